"""
Tests des jetons d'identité (émission, consommation, expiration, nettoyage)
"""
import asyncio

import pytest
from sqlalchemy import select

from app.exceptions import (
    AlreadyCheckedIn, CapacityExceeded, InvalidInput, NotCheckedIn,
    ResourceNotFound, TokenExhausted, TokenExpired, TokenNotFound, UnknownSubject
)
from app.models.identity_token import IdentityToken
from app.services.occupancy_service import OccupancyState
from app.services.token_service import IdentityTokenService, TokenIntent, mask_code
from tests.factories import create_resource, create_user


class TestIssue:

    async def test_issue_sets_expiry_from_ttl(self, db, token_service, student, clock):
        issued = await token_service.issue(db, student.id)

        assert issued.subject_id == student.id
        assert issued.issued_at == clock.now
        assert (issued.expires_at - issued.issued_at).total_seconds() == 300
        assert issued.max_consumptions == 1
        assert len(issued.code_value) >= 32

    async def test_codes_are_unique(self, db, token_service, student):
        codes = {(await token_service.issue(db, student.id)).code_value for _ in range(20)}
        assert len(codes) == 20

    async def test_invalid_max_consumptions(self, db, token_service, student):
        with pytest.raises(InvalidInput):
            await token_service.issue(db, student.id, max_consumptions=3)

    async def test_unknown_subject(self, db, token_service):
        with pytest.raises(UnknownSubject):
            await token_service.issue(db, 4242)

    async def test_new_token_supersedes_previous(self, db, token_service, student):
        first = await token_service.issue(db, student.id)
        second = await token_service.issue(db, student.id)

        with pytest.raises(TokenNotFound):
            await token_service.consume(db, first.code_value)
        token = await token_service.consume(db, second.code_value)
        assert token.consumption_count == 1


class TestConsume:

    async def test_single_use(self, db, token_service, student):
        issued = await token_service.issue(db, student.id)

        token = await token_service.consume(db, issued.code_value)
        assert token.subject_id == student.id
        assert token.consumption_count == 1

        with pytest.raises(TokenExhausted):
            await token_service.consume(db, issued.code_value)

    async def test_two_uses_for_entry_and_exit(self, db, token_service, student):
        issued = await token_service.issue(db, student.id, max_consumptions=2)

        await token_service.consume(db, issued.code_value)
        second = await token_service.consume(db, issued.code_value)
        assert second.consumption_count == 2

        with pytest.raises(TokenExhausted):
            await token_service.consume(db, issued.code_value)

    async def test_consumed_at_keeps_first_use(self, db, token_service, student, clock):
        issued = await token_service.issue(db, student.id, max_consumptions=2)
        first_use = clock.now
        await token_service.consume(db, issued.code_value)
        clock.advance(seconds=30)
        token = await token_service.consume(db, issued.code_value)

        assert token.consumed_at == first_use

    async def test_expired_token(self, db, token_service, student, clock):
        issued = await token_service.issue(db, student.id)
        clock.advance(minutes=5, milliseconds=1)

        with pytest.raises(TokenExpired):
            await token_service.consume(db, issued.code_value)

    async def test_token_at_exact_expiry_is_expired(self, db, token_service, student, clock):
        issued = await token_service.issue(db, student.id)
        clock.advance(seconds=300)

        with pytest.raises(TokenExpired):
            await token_service.consume(db, issued.code_value)

    async def test_expiry_reported_before_exhaustion(self, db, token_service, student, clock):
        issued = await token_service.issue(db, student.id)
        await token_service.consume(db, issued.code_value)
        clock.advance(minutes=10)

        with pytest.raises(TokenExpired):
            await token_service.consume(db, issued.code_value)

    async def test_unknown_code(self, db, token_service):
        with pytest.raises(TokenNotFound):
            await token_service.consume(db, "code-inexistant")

    async def test_empty_code(self, db, token_service):
        with pytest.raises(InvalidInput):
            await token_service.consume(db, "   ")

    async def test_scanned_url_is_accepted(self, db, token_service, student):
        issued = await token_service.issue(db, student.id)
        url = f"https://campus.example.com/scan/{issued.code_value}/"

        token = await token_service.consume(db, url)
        assert token.consumption_count == 1

    @pytest.mark.parametrize("raw,expected", [
        ("abc123", "abc123"),
        ("  abc123 ", "abc123"),
        ("/scan/abc123", "abc123"),
        ("https://campus.example.com/t/abc%2D123", "abc-123"),
    ])
    def test_normalize_code(self, raw, expected):
        assert IdentityTokenService.normalize_code(raw) == expected

    def test_mask_code(self):
        assert mask_code("abcdefghijkl") == "abcdef..."
        assert mask_code("") == "<vide>"

    async def test_concurrent_consumption_succeeds_once(self, session_maker, token_service, student):
        async with session_maker() as session:
            issued = await token_service.issue(session, student.id)

        async def attempt():
            async with session_maker() as session:
                try:
                    await token_service.consume(session, issued.code_value)
                    return "ok"
                except TokenExhausted:
                    return "exhausted"

        results = await asyncio.gather(*(attempt() for _ in range(10)))

        assert results.count("ok") == 1
        assert results.count("exhausted") == 9

        async with session_maker() as session:
            token = (await session.execute(
                select(IdentityToken).where(IdentityToken.code_value == issued.code_value)
            )).scalar_one()
            assert token.consumption_count == 1


class TestRedeem:

    async def test_redeem_verify_only(self, db, token_service, student):
        issued = await token_service.issue(db, student.id)
        result = await token_service.redeem(db, issued.code_value, TokenIntent.VERIFY)

        assert result.subject_id == student.id
        assert result.record is None
        assert result.consumption_count == 1

    async def test_redeem_enter_then_exit(self, db, token_service, state_machine, student, facility):
        subject_id, resource_id = student.id, facility.id
        issued = await token_service.issue(db, subject_id, max_consumptions=2)

        entered = await token_service.redeem(db, issued.code_value, TokenIntent.ENTER, resource_id)
        assert entered.record.is_open
        assert await state_machine.state(db, subject_id, resource_id) == OccupancyState.OPEN

        exited = await token_service.redeem(db, issued.code_value, TokenIntent.EXIT, resource_id)
        assert exited.record.exit_time is not None
        assert exited.consumption_count == 2
        assert await state_machine.state(db, subject_id, resource_id) == OccupancyState.CLOSED

    async def test_enter_or_exit_requires_resource(self, db, token_service, student):
        issued = await token_service.issue(db, student.id)
        with pytest.raises(InvalidInput):
            await token_service.redeem(db, issued.code_value, TokenIntent.ENTER)

    async def test_failed_transition_does_not_burn_token(self, db, token_service, audit, student, facility):
        subject_id, resource_id = student.id, facility.id
        issued = await token_service.issue(db, subject_id)

        with pytest.raises(NotCheckedIn):
            await token_service.redeem(db, issued.code_value, TokenIntent.EXIT, resource_id)

        result = await token_service.redeem(db, issued.code_value, TokenIntent.ENTER, resource_id)
        assert result.consumption_count == 1

        rejected = await audit.list_by_reason(db, "NotCheckedIn")
        assert [a.subject_id for a in rejected] == [subject_id]

    async def test_unknown_resource_is_audited_without_reference(self, db, token_service, audit, student):
        subject_id = student.id
        issued = await token_service.issue(db, subject_id)

        with pytest.raises(ResourceNotFound):
            await token_service.redeem(db, issued.code_value, TokenIntent.ENTER, 999)

        attempts = await audit.list_for_subject(db, subject_id)
        assert attempts[0].resource_id is None
        assert attempts[0].reason_code == "ResourceNotFound"

    async def test_double_entry_is_flagged(self, db, token_service, student, facility):
        subject_id, resource_id = student.id, facility.id
        issued = await token_service.issue(db, subject_id, max_consumptions=2)
        await token_service.redeem(db, issued.code_value, TokenIntent.ENTER, resource_id)

        with pytest.raises(AlreadyCheckedIn):
            await token_service.redeem(db, issued.code_value, TokenIntent.ENTER, resource_id)

    async def test_full_resource(self, db, token_service, student):
        subject_id = student.id
        other = await create_user(db, email="autre@example.com")
        other_id = other.id
        room = await create_resource(db, name="Salle B12", max_capacity=1)
        room_id = room.id

        first = await token_service.issue(db, other_id)
        await token_service.redeem(db, first.code_value, TokenIntent.ENTER, room_id)

        issued = await token_service.issue(db, subject_id)
        with pytest.raises(CapacityExceeded):
            await token_service.redeem(db, issued.code_value, TokenIntent.ENTER, room_id)

    async def test_failed_redeem_of_unknown_code_is_audited(self, db, token_service, audit):
        with pytest.raises(TokenNotFound):
            await token_service.redeem(db, "inconnu", TokenIntent.VERIFY)

        attempts = await audit.list_by_reason(db, "TokenNotFound")
        assert len(attempts) == 1
        assert attempts[0].subject_id is None


class TestSweep:

    async def test_sweep_keeps_tokens_within_grace(self, db, token_service, student, clock):
        await token_service.issue(db, student.id)
        clock.advance(hours=1)

        assert await token_service.sweep_expired(db) == 0

    async def test_sweep_removes_old_tokens(self, db, token_service, student, clock):
        subject_id = student.id
        issued = await token_service.issue(db, subject_id)
        clock.advance(days=2)
        fresh = await token_service.issue(db, subject_id)

        assert await token_service.sweep_expired(db) == 1

        remaining = (await db.execute(select(IdentityToken.code_value))).scalars().all()
        assert remaining == [fresh.code_value]
        assert issued.code_value not in remaining
