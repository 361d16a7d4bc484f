"""Tests for accounts, owner applications, admin tools and dashboard stats."""
from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.constants import OwnerStatus, Role
from app.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from app.core.security import decode_access_token
from app.models.notification import Notification
from app.models.owner import Owner
from app.models.user import User
from app.services import booking_service, owner_service, stats_service, user_service

PROFILE = {"business_name": "Marine Lots", "address": "5 Marine Drive", "city": "Mumbai", "phone": "9876543210"}


class TestAccounts:
    def test_register_user(self, db):
        user = user_service.register(db, "asha", "Asha@Example.com", "secret123")
        assert user.role == Role.USER
        assert user.email == "asha@example.com"
        assert user.password_hash != "secret123"

    def test_register_owner_creates_pending_profile(self, db):
        user = user_service.register(db, "ravi", "ravi@example.com", "secret123", role="owner")
        profile = db.query(Owner).filter(Owner.user_id == user.id).one()
        assert profile.status == OwnerStatus.PENDING

    def test_cannot_self_register_as_admin(self, db):
        with pytest.raises(ValidationError):
            user_service.register(db, "eve", "eve@example.com", "secret123", role="admin")

    def test_duplicate_email(self, db, driver):
        with pytest.raises(ValidationError):
            user_service.register(db, "someone", "driver@example.com", "secret123")

    @pytest.mark.parametrize("email,password", [("not-an-email", "secret123"), ("ok@example.com", "123")])
    def test_invalid_input(self, db, email, password):
        with pytest.raises(ValidationError):
            user_service.register(db, "newbie", email, password)

    def test_login_returns_token_for_user(self, db, driver):
        user, token = user_service.login(db, "DRIVER@example.com", "secret123")
        payload = decode_access_token(token)
        assert payload["sub"] == driver.id
        assert payload["role"] == "user"

    def test_login_bad_password(self, db, driver):
        with pytest.raises(AuthenticationError):
            user_service.login(db, "driver@example.com", "wrong-password")

    def test_create_admin_requires_admin(self, db, admin, driver):
        new_admin = user_service.create_admin(db, admin, "second", "second@example.com", "secret123")
        assert new_admin.role == Role.ADMIN
        with pytest.raises(AuthorizationError):
            user_service.create_admin(db, driver, "third", "third@example.com", "secret123")

    def test_ensure_default_admin_runs_once(self, db):
        assert user_service.ensure_default_admin(db) is not None
        assert user_service.ensure_default_admin(db) is None
        assert db.query(User).filter(User.role == Role.ADMIN).count() == 1


class TestDeleteUser:
    def test_deletes_unreferenced_user(self, db, admin, driver):
        driver_id = driver.id
        user_service.delete_user(db, admin, driver_id)
        assert user_service.get_user(db, driver_id) is None

    def test_refuses_user_with_bookings(self, db, admin, driver, slot, book):
        book(driver, slot)
        with pytest.raises(ConflictError):
            user_service.delete_user(db, admin, driver.id)

    def test_refuses_owner_with_slots(self, db, admin, owner, slot):
        with pytest.raises(ConflictError):
            user_service.delete_user(db, admin, owner.id)

    def test_cannot_delete_self(self, db, admin):
        with pytest.raises(ValidationError):
            user_service.delete_user(db, admin, admin.id)

    def test_missing_user(self, db, admin):
        with pytest.raises(NotFoundError):
            user_service.delete_user(db, admin, "missing")

    def test_requires_admin(self, db, driver, make_user):
        with pytest.raises(AuthorizationError):
            user_service.delete_user(db, driver, make_user("other").id)


class TestOwnerApplications:
    def test_user_applies_and_is_promoted(self, db, driver):
        profile = owner_service.apply_as_owner(db, driver, PROFILE)
        db.refresh(driver)
        assert profile.status == OwnerStatus.PENDING
        assert driver.role == Role.OWNER
        titles = [n.title for n in db.query(Notification).filter(Notification.user_id == driver.id)]
        assert titles == ["Owner Application Submitted"]

    def test_application_requires_all_fields(self, db, driver):
        with pytest.raises(ValidationError):
            owner_service.apply_as_owner(db, driver, {**PROFILE, "phone": " "})

    def test_approved_owner_cannot_reapply(self, db, owner):
        with pytest.raises(StateError):
            owner_service.apply_as_owner(db, owner, PROFILE)

    def test_admin_approves_pending_owner(self, db, admin, driver):
        profile = owner_service.apply_as_owner(db, driver, PROFILE)
        assert [o.id for o in owner_service.list_pending_owners(db, admin)] == [profile.id]

        decided = owner_service.decide_owner(db, admin, profile.id, "approved")
        assert decided.status == OwnerStatus.APPROVED
        assert decided.approved_at is not None
        assert owner_service.list_pending_owners(db, admin) == []

        with pytest.raises(StateError):
            owner_service.decide_owner(db, admin, profile.id, "rejected")

    def test_rejected_owner_can_reapply(self, db, admin, driver):
        profile = owner_service.apply_as_owner(db, driver, PROFILE)
        owner_service.decide_owner(db, admin, profile.id, "rejected")
        again = owner_service.apply_as_owner(db, driver, {**PROFILE, "business_name": "Marine Lots 2"})
        assert again.id == profile.id
        assert again.status == OwnerStatus.PENDING

    def test_review_requires_admin(self, db, driver, owner):
        with pytest.raises(AuthorizationError):
            owner_service.list_pending_owners(db, owner)
        profile = owner_service.apply_as_owner(db, driver, PROFILE)
        with pytest.raises(AuthorizationError):
            owner_service.decide_owner(db, owner, profile.id, "approved")

    def test_bad_decision_and_missing_owner(self, db, admin, driver):
        profile = owner_service.apply_as_owner(db, driver, PROFILE)
        with pytest.raises(ValidationError):
            owner_service.decide_owner(db, admin, profile.id, "pending")
        with pytest.raises(NotFoundError):
            owner_service.decide_owner(db, admin, "missing", "approved")


class TestStats:
    def test_owner_stats(self, db, owner, slot, make_slot, book, gateway, make_user):
        make_slot(owner, name="Second")
        paid_user = make_user("payer")
        paid = book(paid_user, slot, start_in=2, hours=3)
        book(make_user("waiting"), slot, start_in=8, hours=1)
        booking_service.decide(db, owner, paid.id, "approved")
        booking_service.capture_payment(db, paid_user, paid.id, gateway)

        stats = stats_service.owner_stats(db, owner)
        assert stats == {
            "total_slots": 2,
            "occupied_slots": 0,
            "monthly_revenue": "195.00",
            "pending_requests": 1,
        }
        during = paid.start_time + timedelta(minutes=30)
        assert stats_service.owner_stats(db, owner, now=during)["occupied_slots"] == 1

    def test_owner_stats_requires_owner(self, db, driver):
        with pytest.raises(AuthorizationError):
            stats_service.owner_stats(db, driver)

    def test_system_stats(self, db, admin, owner, driver, slot, book):
        booking = book(driver, slot)
        booking_service.decide(db, owner, booking.id, "approved")
        stats = stats_service.system_stats(db, admin)
        assert stats["total_users"] == 3
        assert stats["total_owners"] == 1
        assert stats["active_bookings"] == 1
        assert Decimal(stats["monthly_revenue"]) == Decimal("0")

    def test_system_stats_requires_admin(self, db, owner):
        with pytest.raises(AuthorizationError):
            stats_service.system_stats(db, owner)
