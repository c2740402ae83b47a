"""Unit tests for QuoteStore against moto DynamoDB tables."""

import datetime as dt
from typing import Callable

import pytest
from pydantic import ValidationError

from quote_booking.models import (
    BookingEngineError,
    ErrorCode,
    Quote,
    QuoteCreate,
    QuoteStatus,
    RequestStatus,
)
from quote_booking.services import FixedClock, QuoteStore
from quote_booking.services.identifiers import quote_id_for


class TestServiceRequests:
    def test_open_request(self, quote_store: QuoteStore, now: dt.datetime) -> None:
        request = quote_store.open_request("client-1", "Birthday catering")

        stored = quote_store.get_request(request.request_id)
        assert stored.status == RequestStatus.OPEN
        assert stored.client_id == "client-1"
        assert stored.created_at == now
        assert stored.request_id.startswith("REQ-")

    def test_unknown_request_not_found(self, quote_store: QuoteStore) -> None:
        with pytest.raises(BookingEngineError) as exc_info:
            quote_store.get_request("REQ-2026-MISSING")

        assert exc_info.value.code == ErrorCode.NOT_FOUND


class TestIssueQuote:
    def test_issue_quote_defaults(
        self,
        quote_store: QuoteStore,
        make_quote_data: Callable[..., QuoteCreate],
        now: dt.datetime,
    ) -> None:
        request = quote_store.open_request("client-1", "Portrait session")

        quote = quote_store.issue_quote(make_quote_data(request.request_id, "provider-a", 15000))

        assert quote.status == QuoteStatus.SENT
        assert quote.client_id == "client-1"
        assert quote.issued_at == now
        assert quote.expires_at == now + dt.timedelta(days=30)
        assert quote.quote_id == quote_id_for(request.request_id, "provider-a")
        assert quote_store.get_quote(quote.quote_id).model_dump() == quote.model_dump()

    def test_one_quote_per_provider(
        self, quote_store: QuoteStore, make_quote_data: Callable[..., QuoteCreate]
    ) -> None:
        request = quote_store.open_request("client-1", "Portrait session")
        quote_store.issue_quote(make_quote_data(request.request_id, "provider-a", 15000))

        with pytest.raises(BookingEngineError) as exc_info:
            quote_store.issue_quote(make_quote_data(request.request_id, "provider-a", 12000))

        assert exc_info.value.code == ErrorCode.ALREADY_EXISTS

    def test_naive_event_time_rejected(self, make_quote_data: Callable[..., QuoteCreate]) -> None:
        local_noon = dt.datetime(2026, 6, 20, 12, 0)

        with pytest.raises(ValidationError) as exc_info:
            make_quote_data("REQ-2026-ANY", "provider-a", 15000, event_at=local_noon)

        assert exc_info.value.errors()[0]["loc"] == ("event_at",)

    def test_event_time_with_offset_kept_aware(
        self,
        quote_store: QuoteStore,
        make_quote_data: Callable[..., QuoteCreate],
        now: dt.datetime,
    ) -> None:
        request = quote_store.open_request("client-1", "Portrait session")
        azores = dt.timezone(dt.timedelta(hours=-1))
        azores_noon = dt.datetime(2026, 6, 20, 12, 0, tzinfo=azores)

        quote = quote_store.issue_quote(
            make_quote_data(request.request_id, "provider-a", 15000, event_at=azores_noon)
        )

        stored = quote_store.get_quote(quote.quote_id)
        assert stored.event_at.tzinfo is not None
        assert stored.event_at == dt.datetime(2026, 6, 20, 13, 0, tzinfo=dt.UTC)
        assert stored.event_at - now == dt.timedelta(days=19, hours=1)

    def test_unknown_request_rejected(
        self, quote_store: QuoteStore, make_quote_data: Callable[..., QuoteCreate]
    ) -> None:
        with pytest.raises(BookingEngineError) as exc_info:
            quote_store.issue_quote(make_quote_data("REQ-2026-MISSING", "provider-a", 100))

        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_closed_request_rejected(
        self,
        quote_store: QuoteStore,
        open_request_with_quotes: tuple[str, Quote, Quote],
        acceptance,
        make_quote_data: Callable[..., QuoteCreate],
    ) -> None:
        request_id, quote_a, _ = open_request_with_quotes
        acceptance.accept_quote(request_id, quote_a.quote_id, "client-1")

        with pytest.raises(BookingEngineError) as exc_info:
            quote_store.issue_quote(make_quote_data(request_id, "provider-c", 10000))

        assert exc_info.value.code == ErrorCode.INVALID_REQUEST

    def test_quotes_for_request(
        self,
        quote_store: QuoteStore,
        open_request_with_quotes: tuple[str, Quote, Quote],
    ) -> None:
        request_id, quote_a, quote_b = open_request_with_quotes

        quotes = quote_store.get_quotes_for_request(request_id)

        assert {q.quote_id for q in quotes} == {quote_a.quote_id, quote_b.quote_id}
        assert quote_store.get_quotes_for_request("REQ-2026-OTHER") == []


class TestTransitions:
    def test_check_and_set_transition(
        self,
        quote_store: QuoteStore,
        open_request_with_quotes: tuple[str, Quote, Quote],
        now: dt.datetime,
    ) -> None:
        _, quote_a, _ = open_request_with_quotes

        refused = quote_store.transition_quote(
            quote_a.quote_id, QuoteStatus.SENT, QuoteStatus.REFUSED, actor_id="client-1"
        )

        assert refused.status == QuoteStatus.REFUSED
        assert refused.decided_at == now
        assert refused.decided_by == "client-1"

    def test_stale_from_status_conflicts(
        self,
        quote_store: QuoteStore,
        open_request_with_quotes: tuple[str, Quote, Quote],
    ) -> None:
        _, quote_a, _ = open_request_with_quotes

        with pytest.raises(BookingEngineError) as exc_info:
            quote_store.transition_quote(
                quote_a.quote_id, QuoteStatus.VIEWED, QuoteStatus.REFUSED
            )

        assert exc_info.value.code == ErrorCode.CONFLICT
        assert quote_store.get_quote(quote_a.quote_id).status == QuoteStatus.SENT

    def test_terminal_status_cannot_move(self, quote_store: QuoteStore) -> None:
        with pytest.raises(BookingEngineError) as exc_info:
            quote_store.transition_quote("QTE-ANY", QuoteStatus.ACCEPTED, QuoteStatus.REFUSED)

        assert exc_info.value.code == ErrorCode.INVALID_REQUEST

    def test_unknown_quote_not_found(self, quote_store: QuoteStore) -> None:
        with pytest.raises(BookingEngineError) as exc_info:
            quote_store.transition_quote("QTE-MISSING", QuoteStatus.SENT, QuoteStatus.VIEWED)

        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_mark_viewed_once(
        self,
        quote_store: QuoteStore,
        open_request_with_quotes: tuple[str, Quote, Quote],
        clock: FixedClock,
        now: dt.datetime,
    ) -> None:
        _, quote_a, _ = open_request_with_quotes

        viewed = quote_store.mark_viewed(quote_a.quote_id)
        clock.advance(hours=2)
        again = quote_store.mark_viewed(quote_a.quote_id)

        assert viewed.status == QuoteStatus.VIEWED
        assert again.viewed_at == now

    def test_refuse_quote(
        self,
        quote_store: QuoteStore,
        open_request_with_quotes: tuple[str, Quote, Quote],
    ) -> None:
        _, _, quote_b = open_request_with_quotes

        refused = quote_store.refuse_quote(quote_b.quote_id, "client-1")

        assert refused.status == QuoteStatus.REFUSED
        with pytest.raises(BookingEngineError) as exc_info:
            quote_store.refuse_quote(quote_b.quote_id, "client-1")
        assert exc_info.value.code == ErrorCode.NOT_ACCEPTABLE

    def test_refuse_expired_quote_not_acceptable(
        self,
        quote_store: QuoteStore,
        open_request_with_quotes: tuple[str, Quote, Quote],
        clock: FixedClock,
    ) -> None:
        _, quote_a, _ = open_request_with_quotes
        clock.advance(days=31)

        with pytest.raises(BookingEngineError) as exc_info:
            quote_store.refuse_quote(quote_a.quote_id, "client-1")

        assert exc_info.value.code == ErrorCode.NOT_ACCEPTABLE


class TestExpiry:
    def test_effective_status_is_lazy(
        self,
        quote_store: QuoteStore,
        open_request_with_quotes: tuple[str, Quote, Quote],
        now: dt.datetime,
    ) -> None:
        _, quote_a, _ = open_request_with_quotes
        stored = quote_store.get_quote(quote_a.quote_id)

        assert stored.effective_status(now) == QuoteStatus.SENT
        # Window end is exclusive
        assert stored.effective_status(now + dt.timedelta(days=30)) == QuoteStatus.EXPIRED
        assert stored.status == QuoteStatus.SENT

    def test_sweep_expires_only_overdue_open_quotes(
        self,
        quote_store: QuoteStore,
        make_quote_data: Callable[..., QuoteCreate],
        clock: FixedClock,
    ) -> None:
        request = quote_store.open_request("client-1", "Garden design")
        short = quote_store.issue_quote(
            make_quote_data(request.request_id, "provider-a", 1000, validity_days=2)
        )
        long = quote_store.issue_quote(
            make_quote_data(request.request_id, "provider-b", 2000, validity_days=10)
        )
        refused = quote_store.issue_quote(
            make_quote_data(request.request_id, "provider-c", 3000, validity_days=1)
        )
        quote_store.refuse_quote(refused.quote_id, "client-1")
        clock.advance(days=3)

        expired = quote_store.expire_stale_quotes(request.request_id)

        assert [q.quote_id for q in expired] == [short.quote_id]
        assert quote_store.get_quote(short.quote_id).status == QuoteStatus.EXPIRED
        assert quote_store.get_quote(long.quote_id).status == QuoteStatus.SENT
        assert quote_store.get_quote(refused.quote_id).status == QuoteStatus.REFUSED
