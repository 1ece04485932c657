"""Tests for the submission protocol — proves encrypt → write → confirm → refresh."""

import asyncio

import pytest

from conftest import REVIEWER, FakeEncryption, FakeLedger, make_resolver, run
from sealedreview.errors import (
    ConfirmationTimeout,
    EncryptionUnavailable,
    InvalidReview,
    LedgerFault,
    SubmissionNotObserved,
    UserRejected,
)
from sealedreview.models.review import ReviewInput
from sealedreview.policy.resolver import PolicyResolver
from sealedreview.review.registry import ReviewRegistry
from sealedreview.workflow.submission import SubmissionProtocol


def _protocol(
    ledger: FakeLedger,
    encryption: FakeEncryption,
    resolver: PolicyResolver,
) -> tuple[SubmissionProtocol, ReviewRegistry]:
    registry = ReviewRegistry(ledger, resolver)
    return SubmissionProtocol(ledger, encryption, registry, resolver), registry


class TestHappyPath:
    def test_submit_paper_x(self, ledger: FakeLedger, encryption: FakeEncryption, resolver: PolicyResolver) -> None:
        protocol, registry = _protocol(ledger, encryption, resolver)
        outcome = run(protocol.run(
            ReviewInput(title="Paper X", score=7, author="Ada", category="Physics", public_score=3),
            REVIEWER,
        ))
        record = outcome.record
        assert record.title == "Paper X"
        assert record.is_verified is False
        assert record.clear_value is None
        assert record.public_score == 3
        assert record.author == "Ada"
        assert record.category == "Physics"
        assert registry.count == 1
        assert record.record_id.startswith("review-")

    def test_public_score_is_not_the_encrypted_score(
        self, ledger: FakeLedger, encryption: FakeEncryption, resolver: PolicyResolver,
    ) -> None:
        protocol, _ = _protocol(ledger, encryption, resolver)
        outcome = run(protocol.run(ReviewInput(title="Paper X", score=7), REVIEWER))
        assert outcome.record.public_score == 0

    def test_encrypts_against_context_and_identity(
        self, ledger: FakeLedger, encryption: FakeEncryption, resolver: PolicyResolver,
    ) -> None:
        protocol, _ = _protocol(ledger, encryption, resolver)
        run(protocol.run(ReviewInput(title="Paper X", score=7), REVIEWER))
        assert encryption.calls == [(ledger.context_address, REVIEWER, 7)]

    def test_returned_record_is_read_back_from_ledger(
        self, ledger: FakeLedger, encryption: FakeEncryption, resolver: PolicyResolver,
    ) -> None:
        protocol, _ = _protocol(ledger, encryption, resolver)
        outcome = run(protocol.run(ReviewInput(title="  Paper X  ", score=7), REVIEWER))
        stored = ledger.records[outcome.record.record_id]
        assert outcome.record.created_at == stored.data.timestamp
        assert outcome.record.creator_address == stored.data.creator

    def test_record_ids_strictly_increase(
        self, ledger: FakeLedger, encryption: FakeEncryption, resolver: PolicyResolver,
    ) -> None:
        protocol, _ = _protocol(ledger, encryption, resolver)
        ids = [protocol.next_record_id() for _ in range(50)]
        numbers = [int(i.split("-")[1]) for i in ids]
        assert numbers == sorted(set(numbers))

    def test_progress_reports_confirmation_wait(
        self, ledger: FakeLedger, encryption: FakeEncryption, resolver: PolicyResolver,
    ) -> None:
        protocol, _ = _protocol(ledger, encryption, resolver)
        messages: list[str] = []
        run(protocol.run(ReviewInput(title="Paper X", score=7), REVIEWER, on_progress=messages.append))
        assert messages == ["Waiting for transaction confirmation..."]


class TestValidation:
    @pytest.mark.parametrize("review", [
        ReviewInput(title="", score=7),
        ReviewInput(title="   ", score=7),
        ReviewInput(title="Paper", score=0),
        ReviewInput(title="Paper", score=11),
        ReviewInput(title="Paper", score=True),
        ReviewInput(title="Paper", score=7, category="Astrology"),
    ])
    def test_invalid_input_never_reaches_encryption(
        self, review: ReviewInput, ledger: FakeLedger, encryption: FakeEncryption, resolver: PolicyResolver,
    ) -> None:
        protocol, _ = _protocol(ledger, encryption, resolver)
        with pytest.raises(InvalidReview):
            run(protocol.run(review, REVIEWER))
        assert encryption.calls == []
        assert ledger.create_calls == 0

    def test_blank_author_and_category_get_defaults(
        self, encryption: FakeEncryption, ledger: FakeLedger, resolver: PolicyResolver,
    ) -> None:
        protocol, _ = _protocol(ledger, encryption, resolver)
        cleaned = protocol.validate(ReviewInput(title="Paper", score=5))
        assert cleaned.author == resolver.anonymous_author()
        assert cleaned.category == resolver.default_category()


class TestFailures:
    def test_encryption_failure_writes_nothing(
        self, ledger: FakeLedger, encryption: FakeEncryption, resolver: PolicyResolver,
    ) -> None:
        encryption.unavailable = True
        protocol, _ = _protocol(ledger, encryption, resolver)
        with pytest.raises(EncryptionUnavailable):
            run(protocol.run(ReviewInput(title="Paper X", score=7), REVIEWER))
        assert ledger.create_calls == 0
        assert ledger.records == {}

    def test_user_rejection_is_distinct_from_fault(
        self, ledger: FakeLedger, encryption: FakeEncryption, resolver: PolicyResolver,
    ) -> None:
        ledger.reject_create = UserRejected("user rejected transaction")
        protocol, registry = _protocol(ledger, encryption, resolver)
        with pytest.raises(UserRejected) as info:
            run(protocol.run(ReviewInput(title="Paper X", score=7), REVIEWER))
        assert not isinstance(info.value, LedgerFault)
        assert info.value.retryable is False
        run(registry.refresh())
        assert registry.count == 0

    def test_ledger_fault_is_retryable(
        self, ledger: FakeLedger, encryption: FakeEncryption, resolver: PolicyResolver,
    ) -> None:
        ledger.reject_create = LedgerFault("nonce too low")
        protocol, _ = _protocol(ledger, encryption, resolver)
        with pytest.raises(LedgerFault) as info:
            run(protocol.run(ReviewInput(title="Paper X", score=7), REVIEWER))
        assert info.value.retryable is True

    def test_refresh_failure_after_write_is_not_unwound(
        self, ledger: FakeLedger, encryption: FakeEncryption, resolver: PolicyResolver,
    ) -> None:
        ledger.list_ids_error = LedgerFault("rpc down")
        protocol, _ = _protocol(ledger, encryption, resolver)
        with pytest.raises(SubmissionNotObserved) as info:
            run(protocol.run(ReviewInput(title="Paper X", score=7), REVIEWER))
        assert info.value.record_id in ledger.records
        assert "refresh manually" in str(info.value)

    def test_confirmation_timeout(self, ledger: FakeLedger, encryption: FakeEncryption) -> None:
        resolver = make_resolver(confirmation_timeout_seconds=0.01)
        ledger.hold_confirmations = True
        protocol, registry = _protocol(ledger, encryption, resolver)
        with pytest.raises(ConfirmationTimeout):
            run(protocol.run(ReviewInput(title="Paper X", score=7), REVIEWER))
        # The write may still land; only a refresh reconciles.
        run(registry.refresh())
        assert registry.count == 1
