"""
Inbound SMS handling: classify a text as a vote or a pledge, and render the
TwiML replies the SMS provider expects.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Optional, Union

DONATION_TAG = "twilio"
# Largest value a SQLite INTEGER column holds.
MAX_PLEDGE_AMOUNT = 2**63 - 1


@dataclass
class SmsVote:
    letter: str


@dataclass
class SmsPledge:
    amount: int
    message: str


def is_vote_letter(value: Optional[str], vote_letters: str) -> bool:
    value = (value or "").strip()
    return len(value) == 1 and value.isalpha() and value.upper() in vote_letters.upper()


def _pledge_amount(digits: str) -> int:
    significant = digits.lstrip("0")
    if not significant:
        return 0
    if len(significant) > len(str(MAX_PLEDGE_AMOUNT)):
        return MAX_PLEDGE_AMOUNT
    return min(int(significant), MAX_PLEDGE_AMOUNT)


def parse_message(body: str, vote_letters: str = "ABCDEF") -> Union[SmsVote, SmsPledge]:
    """
    A single allowed letter is a vote. Anything else is a pledge: the first run
    of digits is the amount, and the text is kept as the dedication unless it
    is nothing but that number.
    """
    message = body.strip()
    if is_vote_letter(message, vote_letters):
        return SmsVote(letter=message.upper())

    match = re.search(r"\d+", message)
    digits = match.group(0) if match else ""
    amount = _pledge_amount(digits)
    dedication = "" if message == digits else message
    return SmsPledge(amount=amount, message=dedication)


def render_twiml(message: Optional[str] = None) -> str:
    root = ET.Element("Response")
    if message is not None:
        ET.SubElement(root, "Message").text = message
    return ET.tostring(root, encoding="unicode", short_empty_elements=False)
