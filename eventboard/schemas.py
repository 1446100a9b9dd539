"""
Pydantic schemas for the event board API.

Voting payloads keep the camelCase keys the big-screen display reads.
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel


class Submission(BaseModel):
    id: str
    name: str
    image_url: str
    image_path: Optional[str] = None
    created_at: str
    storage_type: Optional[str] = None


class SubmissionResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Submission


class SubmissionListResponse(BaseModel):
    success: bool = True
    data: list[Submission]
    count: int
    storage_type: str


class UpdateSubmissionRequest(BaseModel):
    name: Optional[str] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class ConfigValueRequest(BaseModel):
    value: Optional[Union[str, int, float, bool]] = None


class ConfigResponse(BaseModel):
    success: bool = True
    key: str
    value: Optional[str] = None
    updated_at: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    service: str
    storage: str
    spaces_bucket: str


class VoteRequest(BaseModel):
    phoneNumber: Optional[str] = None
    letter: Optional[str] = None


class VoteOut(BaseModel):
    id: str
    phoneNumber: str
    letter: str
    round: Optional[int] = None
    createdAt: str


class CastVoteResponse(BaseModel):
    success: bool = True
    pending: Optional[bool] = None
    vote: VoteOut


class VotingStatusRequest(BaseModel):
    status: Optional[str] = None


class VotingStateResponse(BaseModel):
    success: bool = True
    currentRound: int
    roundStatus: str


class RoundHistoryOut(BaseModel):
    round: int
    votes: list[dict]
    endedAt: str


class VotesResponse(BaseModel):
    success: bool = True
    currentRound: int
    roundStatus: str
    votes: list[dict]
    pendingVotes: list[dict]
    roundHistory: list[RoundHistoryOut]


class DonationAttributes(BaseModel):
    real_payment: int
    dedication: str


class DonationFormData(BaseModel):
    attributes: DonationAttributes


class DonationOut(BaseModel):
    donationId: str
    display_name: str
    date: str
    formData: DonationFormData


class DonationListResponse(BaseModel):
    success: bool = True
    data: list[DonationOut]
    count: int
