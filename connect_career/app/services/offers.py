from __future__ import annotations

from typing import Optional

from connect_career.app.errors import PreconditionFailedError
from connect_career.app.models import (
    ApplicationRecord,
    OfferParty,
    OfferRecord,
    OfferStatus,
    PipelineStage,
    StageType,
)


def sort_offers(offers: list[OfferRecord]) -> list[OfferRecord]:
    """Newest first. On equal timestamps the later insertion comes first."""
    indexed = list(enumerate(offers))
    indexed.sort(key=lambda item: (item[1].created_at_utc, item[0]), reverse=True)
    return [offer for _, offer in indexed]


def latest_offer(application: ApplicationRecord) -> Optional[OfferRecord]:
    ordered = sort_offers(application.offers)
    return ordered[0] if ordered else None


def offer_index(application: ApplicationRecord, offer_id: str) -> int:
    for idx, offer in enumerate(sort_offers(application.offers)):
        if offer.id == offer_id:
            return idx
    return -1


def proposed_by(offer: OfferRecord) -> OfferParty:
    return OfferParty.candidate if offer.is_offered_by_candidate else OfferParty.recruiter


def can_edit_offer(offer: OfferRecord) -> bool:
    return offer.status == OfferStatus.pending and not offer.is_offered_by_candidate


def can_respond(offer: OfferRecord, idx: int, party: OfferParty = OfferParty.recruiter) -> bool:
    return idx == 0 and offer.status == OfferStatus.pending and proposed_by(offer) != party


def can_cancel_offer(offer: OfferRecord, idx: int) -> bool:
    return idx == 0 and offer.status == OfferStatus.pending and not offer.is_offered_by_candidate


def can_create_offer(stage: PipelineStage, application: ApplicationRecord) -> bool:
    if stage.type != StageType.offer:
        return False
    latest = latest_offer(application)
    return latest is None or latest.status != OfferStatus.pending


def ensure_can_create(stage: PipelineStage, application: ApplicationRecord) -> None:
    if stage.type != StageType.offer:
        raise PreconditionFailedError(
            f"offers can only be made in an offer stage, current stage: {stage.name}"
        )
    if not can_create_offer(stage, application):
        raise PreconditionFailedError("the latest offer is still pending")


def ensure_can_edit(offer: OfferRecord) -> None:
    if not can_edit_offer(offer):
        raise PreconditionFailedError(f"offer {offer.id} cannot be edited")


def ensure_can_respond(application: ApplicationRecord, offer: OfferRecord, party: OfferParty) -> None:
    if not can_respond(offer, offer_index(application, offer.id), party):
        raise PreconditionFailedError(
            f"offer {offer.id} is not awaiting a {party.value} response"
        )


def ensure_can_cancel(application: ApplicationRecord, offer: OfferRecord) -> None:
    if not can_cancel_offer(offer, offer_index(application, offer.id)):
        raise PreconditionFailedError(f"offer {offer.id} cannot be cancelled")
