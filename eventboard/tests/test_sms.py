import unittest

from eventboard.sms import (
    MAX_PLEDGE_AMOUNT,
    SmsPledge,
    SmsVote,
    is_vote_letter,
    parse_message,
    render_twiml,
)


class ParseMessageTest(unittest.TestCase):
    def test_single_letter_is_a_vote(self):
        self.assertEqual(parse_message("a"), SmsVote(letter="A"))
        self.assertEqual(parse_message("  F \n"), SmsVote(letter="F"))

    def test_letter_outside_ballot_is_a_pledge(self):
        self.assertEqual(parse_message("G"), SmsPledge(amount=0, message="G"))

    def test_custom_ballot(self):
        self.assertEqual(parse_message("x", vote_letters="XYZ"), SmsVote(letter="X"))
        self.assertFalse(is_vote_letter("a", "XYZ"))
        self.assertFalse(is_vote_letter("1", "ABC1"))

    def test_bare_amount_has_empty_dedication(self):
        self.assertEqual(parse_message(" 100 "), SmsPledge(amount=100, message=""))

    def test_first_number_is_the_amount(self):
        self.assertEqual(
            parse_message("give 20 now, 30 later"),
            SmsPledge(amount=20, message="give 20 now, 30 later"),
        )

    def test_blank_body(self):
        self.assertEqual(parse_message("   "), SmsPledge(amount=0, message=""))

    def test_oversized_amount_is_capped(self):
        pledge = parse_message("pledge 99999999999999999999 dollars")
        self.assertEqual(pledge.amount, MAX_PLEDGE_AMOUNT)
        self.assertEqual(pledge.message, "pledge 99999999999999999999 dollars")
        self.assertEqual(parse_message("9" * 5000).amount, MAX_PLEDGE_AMOUNT)
        self.assertEqual(parse_message("0" * 5000 + "7").amount, 7)


class RenderTwimlTest(unittest.TestCase):
    def test_empty_response(self):
        self.assertEqual(render_twiml(), "<Response></Response>")

    def test_message_is_escaped(self):
        self.assertEqual(
            render_twiml("Thanks <3 & more"),
            "<Response><Message>Thanks &lt;3 &amp; more</Message></Response>",
        )


if __name__ == "__main__":
    unittest.main()
