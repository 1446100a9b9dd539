"""
HTTP routes for live voting rounds, the inbound SMS webhook and pledges.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, Form, HTTPException, Query
from fastapi.responses import PlainTextResponse, Response

from eventboard.config import Settings
from eventboard.db import (
    AUTO_REPLY_KEY,
    VOTING_STATUSES,
    DbClient,
    PendingVoteRecord,
    VoteOutcome,
    VoteRecord,
)
from eventboard.dependencies import get_app_settings, get_db_client
from eventboard.schemas import (
    CastVoteResponse,
    DonationAttributes,
    DonationFormData,
    DonationListResponse,
    DonationOut,
    MessageResponse,
    RoundHistoryOut,
    VoteOut,
    VoteRequest,
    VotesResponse,
    VotingStateResponse,
    VotingStatusRequest,
)
from eventboard.sms import DONATION_TAG, SmsVote, is_vote_letter, parse_message, render_twiml

logger = logging.getLogger(__name__)

router = APIRouter()


def _vote_out(record: Union[VoteRecord, PendingVoteRecord]) -> VoteOut:
    return VoteOut(
        id=str(record.id),
        phoneNumber=record.phone_number,
        letter=record.letter,
        round=getattr(record, "round", None),
        createdAt=record.created_at,
    )


@router.get("/votes", response_model=VotesResponse)
def list_votes(db: DbClient = Depends(get_db_client)):
    state = db.get_voting_state()
    return VotesResponse(
        currentRound=state.current_round,
        roundStatus=state.status,
        votes=[vote.as_dict() for vote in db.list_votes()],
        pendingVotes=[vote.as_dict() for vote in db.list_pending_votes()],
        roundHistory=[
            RoundHistoryOut(round=entry.round, votes=entry.votes, endedAt=entry.ended_at)
            for entry in db.list_history()
        ],
    )


@router.post(
    "/votes", response_model=CastVoteResponse, response_model_exclude_none=True
)
def cast_vote(
    payload: VoteRequest,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_app_settings),
):
    """
    Votes cast while the round is not running are buffered as pending rather
    than rejected.
    """
    phone_number = (payload.phoneNumber or "").strip()
    if not phone_number:
        raise HTTPException(status_code=400, detail="Phone number is required")
    if not is_vote_letter(payload.letter, settings.vote_letters):
        raise HTTPException(
            status_code=400,
            detail=f"Letter must be one of {settings.vote_letters.upper()}",
        )

    result = db.cast_vote(phone_number, payload.letter.strip())
    if result.outcome == VoteOutcome.DUPLICATE:
        logger.info("Duplicate vote: %s", phone_number)
        raise HTTPException(
            status_code=400, detail="Phone number already voted in this round"
        )
    if result.outcome == VoteOutcome.PENDING:
        logger.info("Pending vote stored: %s -> %s", phone_number, result.vote.letter)
        return CastVoteResponse(pending=True, vote=_vote_out(result.vote))

    logger.info("Vote: %s -> %s", phone_number, result.vote.letter)
    return CastVoteResponse(vote=_vote_out(result.vote))


@router.delete(
    "/votes/{vote_id}", response_model=MessageResponse, response_model_exclude_none=True
)
def delete_vote(vote_id: int, db: DbClient = Depends(get_db_client)):
    db.delete_vote(vote_id)
    return MessageResponse()


@router.post("/votes/status", response_model=VotingStateResponse)
def set_voting_status(
    payload: VotingStatusRequest, db: DbClient = Depends(get_db_client)
):
    if payload.status not in VOTING_STATUSES:
        raise HTTPException(
            status_code=400,
            detail="Status must be one of: " + ", ".join(VOTING_STATUSES),
        )
    state = db.set_voting_status(payload.status)
    logger.info(
        "Voting status set to %s (round %d)", state.status, state.current_round
    )
    return VotingStateResponse(
        currentRound=state.current_round, roundStatus=state.status
    )


@router.post(
    "/votes/clear", response_model=MessageResponse, response_model_exclude_none=True
)
def clear_votes(db: DbClient = Depends(get_db_client)):
    """Archive the current round's votes and stop voting, keeping the round number."""
    state = db.clear_round()
    logger.info("Cleared votes for round %d", state.current_round)
    return MessageResponse()


def _record_sms_vote(db: DbClient, phone_number: str, letter: str) -> None:
    result = db.cast_vote(phone_number, letter)
    if result.outcome == VoteOutcome.DUPLICATE:
        logger.info("Duplicate vote: %s", phone_number)
    elif result.outcome == VoteOutcome.PENDING:
        logger.info("Pending vote stored: %s -> %s", phone_number, letter)
    else:
        logger.info("Vote: %s -> %s", phone_number, letter)


def _auto_reply(db: DbClient, fallback: str) -> str:
    entry = db.get_config(AUTO_REPLY_KEY)
    return entry.value if entry and entry.value else fallback


@router.post("/twilio/webhook")
def sms_webhook(
    sender: Optional[str] = Form(None, alias="From"),
    body: Optional[str] = Form(None, alias="Body"),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_app_settings),
):
    """
    A single letter is a vote and gets an empty reply; any other text is a
    pledge and gets the configured auto-reply.
    """
    if not sender or not body:
        return PlainTextResponse("Missing fields", status_code=400)

    try:
        message = parse_message(body, settings.vote_letters)
        if isinstance(message, SmsVote):
            _record_sms_vote(db, sender, message.letter)
            reply = render_twiml()
        else:
            donation = db.create_donation(
                sender, message.amount, message.message, DONATION_TAG
            )
            logger.info("Donation: %s -> $%d", sender, donation.amount)
            reply = render_twiml(_auto_reply(db, settings.default_auto_reply))
    except Exception:
        logger.exception("Webhook error for %s", sender)
        return PlainTextResponse("Error", status_code=500)

    return Response(content=reply, media_type="text/xml")


@router.get("/donations", response_model=DonationListResponse)
def list_donations(
    tags: Optional[str] = Query(None),
    db: DbClient = Depends(get_db_client),
):
    donations = [
        DonationOut(
            donationId=donation.id,
            display_name=donation.phone,
            date=donation.created_at,
            formData=DonationFormData(
                attributes=DonationAttributes(
                    real_payment=donation.amount, dedication=donation.message
                )
            ),
        )
        for donation in db.list_donations(tags)
    ]
    return DonationListResponse(data=donations, count=len(donations))
