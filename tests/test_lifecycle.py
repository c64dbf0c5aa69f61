"""Tests for the reservation lifecycle state machine.

Database access is mocked: txn() yields a MagicMock cursor and the
repository functions are patched in the lifecycle module.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
from psycopg2 import errors as pg_errors

from resortly.domain import lifecycle
from resortly.domain.booking import BookingRequest
from resortly.domain.errors import (
    BookingValidationError,
    CompletionNotDueError,
    ForbiddenError,
    InvalidTransitionError,
    PriceOutOfRangeError,
    ReservationNotFoundError,
    RoomNotFoundError,
    RoomUnavailableError,
    StaleReservationStatusError,
)
from resortly.domain.lifecycle import (
    CUSTOMER,
    OWNER,
    SYSTEM,
    TRANSITIONS,
    Actor,
    authorize,
    is_feedback_eligible,
    parties_for,
    resolve_transition,
)
from resortly.domain.pricing import MAX_TOTAL_PRICE
from resortly.infra.repositories.rooms_repository import RoomRecord

from .helpers import (
    CUSTOMER_ID,
    OWNER_ID,
    RESORT_ID,
    ROOM_ID,
    STRANGER_ID,
    make_reservation,
    mock_txn_for,
)

CUSTOMER_ACTOR = Actor(user_id=CUSTOMER_ID, role="customer")
OWNER_ACTOR = Actor(user_id=OWNER_ID, role="owner")
STRANGER = Actor(user_id=STRANGER_ID, role="customer")

ROOM = RoomRecord(
    id=ROOM_ID, resort_id=RESORT_ID, owner_id=OWNER_ID, nightly_rate=100, capacity=2, deleted=False
)


@pytest.fixture
def cur():
    return MagicMock()


@pytest.fixture(autouse=True)
def _txn(cur):
    with patch.object(lifecycle, "txn", mock_txn_for(cur)):
        yield


def _cas_succeeds():
    """compare_and_set_status stand-in that applies the new status."""

    def _cas(cur, reservation, *, expected_status, new_status):
        assert reservation.status == expected_status
        return replace(reservation, status=new_status)

    return _cas


# ── Transition table ─────────────────────────────────────────────────────────


class TestTransitionTable:
    def test_exactly_the_five_legal_transitions(self):
        rows = {(t.from_status, t.event, t.to_status) for t in TRANSITIONS}
        assert rows == {
            ("pending", "approve", "approved"),
            ("pending", "reject", "rejected"),
            ("pending", "cancel", "cancelled"),
            ("approved", "cancel", "cancelled"),
            ("approved", "complete", "completed"),
        }

    def test_terminal_statuses_have_no_outgoing_transition(self):
        sources = {t.from_status for t in TRANSITIONS}
        for status in ("rejected", "cancelled", "completed"):
            assert status not in sources

    def test_only_owner_approves(self):
        approve = [t for t in TRANSITIONS if t.event == "approve"]
        assert [t.parties for t in approve] == [frozenset({OWNER})]

    def test_system_may_only_complete(self):
        assert [t.event for t in TRANSITIONS if SYSTEM in t.parties] == ["complete"]


class TestAuthorize:
    def test_parties(self):
        reservation = make_reservation()
        assert parties_for(reservation, CUSTOMER_ACTOR) == {CUSTOMER}
        assert parties_for(reservation, OWNER_ACTOR) == {OWNER}
        assert parties_for(reservation, STRANGER) == frozenset()

    def test_owner_booking_own_room_holds_both_parties(self):
        reservation = make_reservation(customer_id=OWNER_ID)
        assert parties_for(reservation, OWNER_ACTOR) == {CUSTOMER, OWNER}

    def test_stranger_forbidden(self):
        with pytest.raises(ForbiddenError):
            authorize(make_reservation(), STRANGER, "cancel")

    def test_customer_cannot_approve(self):
        with pytest.raises(ForbiddenError, match="approve"):
            authorize(make_reservation(), CUSTOMER_ACTOR, "approve")

    def test_authorization_does_not_depend_on_status(self):
        """A forbidden actor is told so even when the status is also wrong."""
        with pytest.raises(ForbiddenError):
            authorize(make_reservation(status="cancelled"), CUSTOMER_ACTOR, "reject")

    def test_customer_cannot_cancel_approved(self):
        reservation = make_reservation(status="approved")
        parties = authorize(reservation, CUSTOMER_ACTOR, "cancel")
        with pytest.raises(InvalidTransitionError):
            resolve_transition(reservation, "cancel", parties)


# ── Creation ─────────────────────────────────────────────────────────────────


class TestCreateReservation:
    REQUEST = BookingRequest(
        customer_id=CUSTOMER_ID,
        room_id=ROOM_ID,
        start_date=date(2026, 3, 10),
        end_date=date(2026, 3, 13),
    )

    def test_creates_pending_with_price(self):
        created = make_reservation(
            start_date=date(2026, 3, 10), end_date=date(2026, 3, 13), total_price=300
        )
        with patch.object(lifecycle, "require_bookable_room", return_value=ROOM) as mock_room, \
             patch.object(lifecycle, "assert_room_available") as mock_check, \
             patch.object(lifecycle, "insert_reservation", return_value=created) as mock_insert:
            result = lifecycle.create_reservation(self.REQUEST)

        assert result.status == "pending"
        assert mock_room.call_args.kwargs["lock"] is True
        mock_check.assert_called_once()
        assert mock_insert.call_args.kwargs["total_price"] == 300
        assert mock_insert.call_args.kwargs["customer_id"] == CUSTOMER_ID

    def test_long_expensive_stay_priced_beyond_int4(self):
        request = replace(self.REQUEST, start_date=date(2030, 1, 1), end_date=date(2033, 1, 1))
        pricey = replace(ROOM, nightly_rate=2_000_000)
        with patch.object(lifecycle, "require_bookable_room", return_value=pricey), \
             patch.object(lifecycle, "assert_room_available"), \
             patch.object(lifecycle, "insert_reservation", return_value=make_reservation()) as mock_insert:
            lifecycle.create_reservation(request)

        assert mock_insert.call_args.kwargs["total_price"] == 2_192_000_000

    def test_total_beyond_price_column_rejected_before_insert(self):
        pricey = replace(ROOM, nightly_rate=MAX_TOTAL_PRICE)
        with patch.object(lifecycle, "require_bookable_room", return_value=pricey), \
             patch.object(lifecycle, "assert_room_available"), \
             patch.object(lifecycle, "insert_reservation") as mock_insert:
            with pytest.raises(PriceOutOfRangeError):
                lifecycle.create_reservation(self.REQUEST)

        mock_insert.assert_not_called()

    def test_unavailable_room_does_not_insert(self):
        with patch.object(lifecycle, "require_bookable_room", return_value=ROOM), \
             patch.object(
                 lifecycle,
                 "assert_room_available",
                 side_effect=RoomUnavailableError(ROOM_ID, date(2026, 3, 10), date(2026, 3, 13)),
             ), \
             patch.object(lifecycle, "insert_reservation") as mock_insert:
            with pytest.raises(RoomUnavailableError):
                lifecycle.create_reservation(self.REQUEST)

        mock_insert.assert_not_called()

    def test_missing_room(self):
        with patch.object(lifecycle, "require_bookable_room", side_effect=RoomNotFoundError(ROOM_ID)), \
             patch.object(lifecycle, "insert_reservation") as mock_insert:
            with pytest.raises(RoomNotFoundError):
                lifecycle.create_reservation(self.REQUEST)

        mock_insert.assert_not_called()


# ── Approve ──────────────────────────────────────────────────────────────────


class TestApprove:
    def test_owner_approves_pending(self):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation()), \
             patch.object(lifecycle, "require_bookable_room", return_value=ROOM) as mock_room, \
             patch.object(lifecycle, "assert_room_available") as mock_check, \
             patch.object(lifecycle, "compare_and_set_status", side_effect=_cas_succeeds()):
            result = lifecycle.approve_reservation("res-1", OWNER_ACTOR)

        assert result.status == "approved"
        assert mock_room.call_args.kwargs["lock"] is True
        kwargs = mock_check.call_args.kwargs
        assert kwargs["exclude_reservation_id"] == make_reservation().id
        assert kwargs["statuses"] == ("approved", "completed")

    def test_revalidation_conflict(self):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation()), \
             patch.object(lifecycle, "require_bookable_room", return_value=ROOM), \
             patch.object(
                 lifecycle,
                 "assert_room_available",
                 side_effect=RoomUnavailableError(ROOM_ID, date(2026, 3, 1), date(2026, 3, 5)),
             ), \
             patch.object(lifecycle, "compare_and_set_status") as mock_cas:
            with pytest.raises(RoomUnavailableError):
                lifecycle.approve_reservation("res-1", OWNER_ACTOR)

        mock_cas.assert_not_called()

    def test_exclusion_constraint_reported_as_unavailable(self):
        violation = pg_errors.ExclusionViolation("conflicting key value violates exclusion constraint")
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation()), \
             patch.object(lifecycle, "require_bookable_room", return_value=ROOM), \
             patch.object(lifecycle, "assert_room_available"), \
             patch.object(lifecycle, "compare_and_set_status", side_effect=violation):
            with pytest.raises(RoomUnavailableError):
                lifecycle.approve_reservation("res-1", OWNER_ACTOR)

    def test_lost_race_is_stale(self):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation()), \
             patch.object(lifecycle, "require_bookable_room", return_value=ROOM), \
             patch.object(lifecycle, "assert_room_available"), \
             patch.object(lifecycle, "compare_and_set_status", return_value=None):
            with pytest.raises(StaleReservationStatusError):
                lifecycle.approve_reservation("res-1", OWNER_ACTOR)

    def test_customer_forbidden_before_any_check(self):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation()), \
             patch.object(lifecycle, "assert_room_available") as mock_check:
            with pytest.raises(ForbiddenError):
                lifecycle.approve_reservation("res-1", CUSTOMER_ACTOR)

        mock_check.assert_not_called()

    def test_not_pending(self):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation(status="rejected")):
            with pytest.raises(InvalidTransitionError):
                lifecycle.approve_reservation("res-1", OWNER_ACTOR)

    def test_not_found(self):
        with patch.object(lifecycle, "get_reservation", return_value=None):
            with pytest.raises(ReservationNotFoundError):
                lifecycle.approve_reservation("res-1", OWNER_ACTOR)


# ── Reject / cancel / complete ───────────────────────────────────────────────


class TestReject:
    def test_owner_rejects_pending(self):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation()), \
             patch.object(lifecycle, "compare_and_set_status", side_effect=_cas_succeeds()):
            assert lifecycle.reject_reservation("res-1", OWNER_ACTOR).status == "rejected"

    def test_cannot_reject_approved(self):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation(status="approved")):
            with pytest.raises(InvalidTransitionError):
                lifecycle.reject_reservation("res-1", OWNER_ACTOR)


class TestCancel:
    @pytest.mark.parametrize(
        "status,actor",
        [
            ("pending", CUSTOMER_ACTOR),
            ("pending", OWNER_ACTOR),
            ("approved", OWNER_ACTOR),
        ],
    )
    def test_allowed(self, status, actor):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation(status=status)), \
             patch.object(lifecycle, "compare_and_set_status", side_effect=_cas_succeeds()):
            result = lifecycle.cancel_reservation("res-1", actor)

        assert result.status == "cancelled"
        assert result.deleted is False

    def test_customer_cannot_cancel_approved(self):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation(status="approved")), \
             patch.object(lifecycle, "compare_and_set_status") as mock_cas:
            with pytest.raises(InvalidTransitionError):
                lifecycle.cancel_reservation("res-1", CUSTOMER_ACTOR)

        mock_cas.assert_not_called()

    @pytest.mark.parametrize("status", ["rejected", "cancelled", "completed"])
    def test_terminal_statuses_cannot_be_cancelled(self, status):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation(status=status)):
            with pytest.raises(InvalidTransitionError):
                lifecycle.cancel_reservation("res-1", OWNER_ACTOR)

    def test_stranger_forbidden(self):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation()):
            with pytest.raises(ForbiddenError):
                lifecycle.cancel_reservation("res-1", STRANGER)


class TestComplete:
    def test_owner_completes_started_stay(self):
        reservation = make_reservation(status="approved")
        with patch.object(lifecycle, "get_reservation", return_value=reservation), \
             patch.object(lifecycle, "compare_and_set_status", side_effect=_cas_succeeds()):
            result = lifecycle.complete_reservation("res-1", OWNER_ACTOR, today=date(2026, 3, 1))

        assert result.status == "completed"

    def test_before_start_not_due(self):
        reservation = make_reservation(status="approved")
        with patch.object(lifecycle, "get_reservation", return_value=reservation), \
             patch.object(lifecycle, "compare_and_set_status") as mock_cas:
            with pytest.raises(CompletionNotDueError):
                lifecycle.complete_reservation("res-1", OWNER_ACTOR, today=date(2026, 2, 28))

        mock_cas.assert_not_called()

    def test_pending_cannot_complete(self):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation()):
            with pytest.raises(InvalidTransitionError):
                lifecycle.complete_reservation("res-1", OWNER_ACTOR, today=date(2026, 3, 2))

    def test_customer_forbidden(self):
        reservation = make_reservation(status="approved")
        with patch.object(lifecycle, "get_reservation", return_value=reservation):
            with pytest.raises(ForbiddenError):
                lifecycle.complete_reservation("res-1", CUSTOMER_ACTOR, today=date(2026, 3, 2))


class TestUpdateStatus:
    def test_approved_routes_to_approve(self):
        with patch.object(lifecycle, "approve_reservation") as mock_approve:
            lifecycle.update_reservation_status("res-1", OWNER_ACTOR, "approved")
        mock_approve.assert_called_once_with("res-1", OWNER_ACTOR)

    def test_rejected_routes_to_reject(self):
        with patch.object(lifecycle, "reject_reservation") as mock_reject:
            lifecycle.update_reservation_status("res-1", OWNER_ACTOR, "rejected")
        mock_reject.assert_called_once_with("res-1", OWNER_ACTOR)

    @pytest.mark.parametrize("status", ["completed", "cancelled", "pending", "bogus"])
    def test_other_targets_rejected(self, status):
        with pytest.raises(BookingValidationError):
            lifecycle.update_reservation_status("res-1", OWNER_ACTOR, status)


# ── Reads ────────────────────────────────────────────────────────────────────


class TestReads:
    def test_get_for_customer(self):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation()):
            assert lifecycle.get_reservation_for_actor("res-1", CUSTOMER_ACTOR).customer_id == CUSTOMER_ID

    def test_get_for_stranger_forbidden(self):
        with patch.object(lifecycle, "get_reservation", return_value=make_reservation()):
            with pytest.raises(ForbiddenError):
                lifecycle.get_reservation_for_actor("res-1", STRANGER)

    def test_owner_lists_resort_reservations(self):
        with patch.object(lifecycle, "list_reservations_for_owner", return_value=[]) as mock_owner, \
             patch.object(lifecycle, "list_reservations_for_customer") as mock_customer:
            lifecycle.list_reservations_for_actor(OWNER_ACTOR, status="pending")

        assert mock_owner.call_args.args[1] == OWNER_ID
        assert mock_owner.call_args.kwargs["status"] == "pending"
        mock_customer.assert_not_called()

    def test_customer_lists_own_reservations(self):
        with patch.object(lifecycle, "list_reservations_for_customer", return_value=[]) as mock_customer:
            lifecycle.list_reservations_for_actor(CUSTOMER_ACTOR)

        assert mock_customer.call_args.args[1] == CUSTOMER_ID

    def test_unknown_status_filter(self):
        with pytest.raises(BookingValidationError):
            lifecycle.list_reservations_for_actor(CUSTOMER_ACTOR, status="archived")


class TestFeedbackEligibility:
    def test_only_completed(self):
        assert is_feedback_eligible(make_reservation(status="completed"))
        for status in ("pending", "approved", "rejected", "cancelled"):
            assert not is_feedback_eligible(make_reservation(status=status))
