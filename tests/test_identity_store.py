# File: tests/test_identity_store.py

import pytest

from duet.core.errors import AlreadyPaired, DuplicateUsername, NotFound, ValidationError
from duet.models.user import UserRole, UserStatus


def _create(store, db, username="alice"):
    user = store.create_user(db, username=username, password_hash="hash", display_name=" Alice ")
    db.commit()
    return user


def test_create_and_fetch_user(store, db):
    user = _create(store, db)

    assert user.id
    assert user.display_name == "Alice"
    assert user.role == UserRole.USER
    assert user.status == UserStatus.ACTIVE
    assert user.couple_id is None
    assert store.get_by_id(db, user.id) is user
    assert store.get_by_username(db, "alice").id == user.id
    assert store.get_by_username(db, "nobody") is None


def test_duplicate_username_is_rejected(store, db):
    _create(store, db)
    with pytest.raises(DuplicateUsername):
        store.create_user(db, username=" alice ", password_hash="other")


def test_blank_username_is_rejected(store, db):
    with pytest.raises(ValidationError):
        store.create_user(db, username="   ", password_hash="hash")


def test_username_cannot_be_updated(store, db):
    user = _create(store, db)
    with pytest.raises(ValidationError):
        store.update_profile(db, user.id, username="mallory")


def test_update_mutable_fields(store, db):
    user = _create(store, db)
    store.update_profile(db, user.id, display_name="Ally", role="admin", status=UserStatus.DISABLED)
    db.commit()

    assert user.display_name == "Ally"
    assert user.role == UserRole.ADMIN
    assert not user.is_active


def test_require_user_raises_not_found(store, db):
    with pytest.raises(NotFound):
        store.require_user(db, "missing")


def test_couple_link_moves_null_to_value_and_back(store, db):
    user = _create(store, db)

    store.set_couple_link(db, user.id, "couple-1")
    db.commit()
    assert store.get_by_id(db, user.id).couple_id == "couple-1"

    # Re-setting the same link is allowed.
    store.set_couple_link(db, user.id, "couple-1")

    store.set_couple_link(db, user.id, None)
    db.commit()
    assert store.get_by_id(db, user.id).couple_id is None


def test_overwriting_a_link_with_another_couple_fails(store, db):
    user = _create(store, db)
    store.set_couple_link(db, user.id, "couple-1")
    db.commit()

    with pytest.raises(AlreadyPaired):
        store.set_couple_link(db, user.id, "couple-2")
    db.rollback()
    assert store.get_by_id(db, user.id).couple_id == "couple-1"


def test_linking_unknown_user_raises_not_found(store, db):
    with pytest.raises(NotFound):
        store.set_couple_link(db, "missing", "couple-1")


def test_clear_couple_links(store, db):
    first = _create(store, db, "alice")
    second = _create(store, db, "bob")
    store.set_couple_link(db, first.id, "couple-1")
    store.set_couple_link(db, second.id, "couple-1")
    db.commit()

    assert store.clear_couple_links(db, "couple-1") == 2
    db.commit()
    assert first.couple_id is None
    assert second.couple_id is None
