from datetime import datetime, timedelta

import pytest
from sqlmodel import select

from app.errors import AlreadyConsumed, Expired, InvalidToken, NotFound
from app.models import DownloadToken
from app.services.download_tokens import (
    cleanup_expired,
    confirm_credential,
    consume,
    find_live_token_for_purchase,
    generate_token,
    get_by_checkout,
    issue_placeholder,
    peek,
)

TTL = timedelta(hours=24)


def _confirm(session, product, purchase_id, token="tok_1", checkout_id="cks_1", now=None):
    return confirm_credential(
        session,
        checkout_id=checkout_id,
        token=token,
        file_path=product.file_path,
        ttl=TTL,
        purchase_id=purchase_id,
        product_id=product.id,
        now=now,
    )


def _all(session):
    return session.exec(select(DownloadToken)).all()


def test_generated_tokens_are_unguessable():
    tokens = {generate_token() for _ in range(50)}

    assert len(tokens) == 50
    assert all(len(token) >= 40 for token in tokens)


def test_placeholder_has_no_token_or_expiry(session, product):
    row = issue_placeholder(session, "cks_1", product.id)

    assert row.is_placeholder
    assert row.expires_at is None
    assert row.purchase_id is None
    assert row.used is False


def test_placeholder_is_idempotent(session, product):
    first = issue_placeholder(session, "cks_1", product.id)
    second = issue_placeholder(session, "cks_1", product.id)

    assert first.id == second.id
    assert len(_all(session)) == 1


def test_confirm_fills_placeholder_in_place(session, product, purchase_id):
    placeholder = issue_placeholder(session, "cks_1", product.id)
    now = datetime(2026, 1, 1, 12, 0, 0)

    row = _confirm(session, product, purchase_id, now=now)

    assert row.id == placeholder.id
    assert row.token == "tok_1"
    assert row.purchase_id == purchase_id
    assert row.checkout_id == "cks_1"
    assert row.file_path == product.file_path
    assert row.expires_at == now + TTL
    assert len(_all(session)) == 1


def test_confirm_without_placeholder_inserts(session, product, purchase_id):
    row = _confirm(session, product, purchase_id)

    assert row.token == "tok_1"
    assert row.purchase_id == purchase_id
    assert len(_all(session)) == 1


def test_confirm_retry_keeps_issued_token(session, product, purchase_id):
    _confirm(session, product, purchase_id, token="tok_1")
    row = _confirm(session, product, purchase_id, token="tok_2")

    assert row.token == "tok_1"
    assert len(_all(session)) == 1


def test_confirm_retry_does_not_revive_used_token(session, product, purchase_id):
    _confirm(session, product, purchase_id, token="tok_1")
    consume(session, "tok_1")

    row = _confirm(session, product, purchase_id, token="tok_2")

    assert row.token == "tok_1"
    assert row.used is True


def test_consume_succeeds_once(session, product, purchase_id):
    _confirm(session, product, purchase_id)

    assert consume(session, "tok_1") == product.file_path

    row = get_by_checkout(session, "cks_1")
    assert row.used is True
    assert row.used_at is not None

    with pytest.raises(AlreadyConsumed):
        consume(session, "tok_1")


def test_consume_after_expiry_is_expired(session, product, purchase_id):
    issued_at = datetime(2026, 1, 1, 12, 0, 0)
    _confirm(session, product, purchase_id, now=issued_at)

    with pytest.raises(Expired):
        consume(session, "tok_1", now=issued_at + TTL + timedelta(seconds=1))

    assert get_by_checkout(session, "cks_1").used is False


def test_expiry_wins_over_used_flag(session, product, purchase_id):
    issued_at = datetime(2026, 1, 1, 12, 0, 0)
    _confirm(session, product, purchase_id, now=issued_at)
    consume(session, "tok_1", now=issued_at + timedelta(hours=1))

    with pytest.raises(Expired):
        consume(session, "tok_1", now=issued_at + TTL + timedelta(minutes=5))


def test_unknown_token(session):
    with pytest.raises(InvalidToken) as exc:
        consume(session, "nope")

    assert isinstance(exc.value, NotFound)
    assert exc.value.status_code == 403


def test_peek_does_not_consume(session, product, purchase_id):
    _confirm(session, product, purchase_id)

    row = peek(session, "tok_1")

    assert row.used is False
    assert consume(session, "tok_1") == product.file_path


def test_find_live_token_for_purchase(session, product, purchase_id):
    assert find_live_token_for_purchase(session, purchase_id) is None

    issue_placeholder(session, "cks_1", product.id)
    assert find_live_token_for_purchase(session, purchase_id) is None

    _confirm(session, product, purchase_id)
    assert find_live_token_for_purchase(session, purchase_id).token == "tok_1"

    consume(session, "tok_1")
    assert find_live_token_for_purchase(session, purchase_id) is None


def test_cleanup_removes_expired_and_stale_placeholders(session, product, purchase_id):
    now = datetime(2026, 3, 1, 0, 0, 0)

    _confirm(session, product, purchase_id, token="old", checkout_id="cks_old", now=now - timedelta(days=2))
    _confirm(session, product, purchase_id, token="live", checkout_id="cks_live", now=now)
    stale = DownloadToken(checkout_id="cks_stale", product_id=product.id, created_at=now - timedelta(days=8))
    fresh = DownloadToken(checkout_id="cks_fresh", product_id=product.id, created_at=now - timedelta(days=1))
    session.add(stale)
    session.add(fresh)
    session.commit()

    removed = cleanup_expired(session, placeholder_retention=timedelta(days=7), now=now)

    assert removed == {"expired": 1, "stale_placeholders": 1}
    remaining = {row.checkout_id for row in _all(session)}
    assert remaining == {"cks_live", "cks_fresh"}


def test_placeholder_cannot_be_spent(session, product):
    issue_placeholder(session, "cks_1", product.id)

    with pytest.raises(InvalidToken):
        peek(session, None)
    with pytest.raises(InvalidToken):
        consume(session, None)

    assert get_by_checkout(session, "cks_1").used is False
