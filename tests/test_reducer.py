# tests/test_reducer.py
"""Reducer transitions, not-found handling and state-tree invariants."""

from datetime import timedelta

import pytest

from core import actions as a
from core.errors import ValidationError
from core.models import (
    ModerationStatus,
    OrderStatus,
    Priority,
    ReturnStatus,
    Role,
    User,
    UserStatus,
)
from core.reducer import reduce, reduce_with_result
from core.settings import DEFAULT_PLATFORM_SETTINGS
from core.state import initial_state
from factories import (
    ADMIN,
    RETAILER,
    SUPPORT,
    T0,
    WHOLESALER,
    order,
    pending_user,
    product,
    promotion,
    return_request,
    ticket,
)


def run(state, *actions):
    for action in actions:
        state = reduce(state, action)
    return state


# --------------------------------------------------------------------------- #
# Users & registration
# --------------------------------------------------------------------------- #

def test_approve_user_moves_pending_into_users_in_one_step():
    state = run(initial_state(), a.AddPendingUser(pending_user("pu1")))
    users_before = len(state.users)

    result = reduce_with_result(state, a.ApproveUser("pu1", ADMIN, new_user_id="u-new"))

    assert result.applied
    assert len(result.state.users) == users_before + 1
    assert [p.id for p in result.state.pending_users] == []
    created = result.state.find_user("u-new")
    assert created.verified and created.status == UserStatus.ACTIVE
    assert created.email == "shop@example.com"


def test_approve_user_rejects_reused_pending_id():
    with pytest.raises(ValidationError):
        a.ApproveUser("pu1", ADMIN, new_user_id="pu1")


def test_approve_user_with_existing_target_id_is_a_no_op():
    state = run(initial_state(), a.AddPendingUser(pending_user("pu1")))
    result = reduce_with_result(state, a.ApproveUser("pu1", ADMIN, new_user_id=RETAILER))
    assert not result.applied
    assert result.state is state


def test_reject_user_never_creates_a_user():
    state = run(initial_state(), a.AddPendingUser(pending_user("pu1")))
    after = reduce(state, a.RejectUser("pu1", ADMIN, reason="incomplete documents"))
    assert after.users == state.users
    assert after.pending_users == ()


def test_unknown_pending_user_yields_diagnostic():
    state = initial_state()
    result = reduce_with_result(state, a.ApproveUser("missing", ADMIN))
    assert not result.applied
    assert result.state is state
    assert result.diagnostic == "pending user missing not found"
    assert result.notifications == ()


def test_bulk_verify_only_touches_listed_users():
    unverified = User(id="u1", name="Shop", email="s@example.com", role=Role.RETAILER, verified=False)
    other = User(id="u3", name="Other", email="o@example.com", role=Role.RETAILER, verified=False)
    state = run(initial_state(), a.AddUser(unverified), a.AddUser(other))

    after = reduce(state, a.BulkVerifyUsers(["u1", RETAILER]))

    assert after.find_user("u1").verified
    assert after.find_user(RETAILER).verified
    assert not after.find_user("u3").verified
    untouched = {u.id: u.verified for u in state.users if u.id not in ("u1", RETAILER)}
    assert untouched == {u.id: u.verified for u in after.users if u.id not in ("u1", RETAILER)}


def test_suspend_user_only_changes_status():
    after = reduce(initial_state(), a.SuspendUser(RETAILER))
    user = after.find_user(RETAILER)
    assert user.status == UserStatus.SUSPENDED
    assert user.verified


# --------------------------------------------------------------------------- #
# Products & orders
# --------------------------------------------------------------------------- #

def test_update_of_absent_product_is_a_no_op():
    state = initial_state()
    result = reduce_with_result(state, a.UpdateProduct(product("ghost")))
    assert not result.applied
    assert result.diagnostic == "product ghost not found"
    assert result.state.products == ()


def test_add_product_twice_keeps_one_record():
    state = run(initial_state(), a.AddProduct(product("p1")), a.AddProduct(product("p1", price=120)))
    assert len(state.products) == 1
    assert state.products[0].price == 120


def test_delete_product():
    state = run(initial_state(), a.AddProduct(product("p1")), a.DeleteProduct("p1"))
    assert state.products == ()


def test_order_items_are_snapshots():
    state = run(initial_state(), a.AddProduct(product("p1", price=100)), a.AddOrder(order("o1", total=200)))
    state = reduce(state, a.UpdateProduct(product("p1", price=999)))
    assert state.orders[0].items[0].price == 100
    assert state.orders[0].total == 200


def test_update_order_keeps_items_and_total():
    state = run(initial_state(), a.AddOrder(order("o1", total=200)))
    edited = order("o1", total=5, status=OrderStatus.ACCEPTED, items=())
    after = reduce(state, a.UpdateOrder(edited))
    assert after.orders[0].status == OrderStatus.ACCEPTED
    assert after.orders[0].total == 200
    assert len(after.orders[0].items) == 1


def test_illegal_order_transition_is_rejected():
    state = run(initial_state(), a.AddOrder(order("o1")))
    result = reduce_with_result(state, a.UpdateOrder(order("o1", status=OrderStatus.COMPLETED)))
    assert not result.applied
    assert "cannot move from pending to completed" in result.diagnostic


# --------------------------------------------------------------------------- #
# Promotions
# --------------------------------------------------------------------------- #

def test_add_promotion_is_forced_pending_and_inactive():
    state = reduce(initial_state(), a.AddPromotion(promotion(status=ModerationStatus.APPROVED, active=True)))
    promo = state.promotions[0]
    assert promo.status == ModerationStatus.PENDING
    assert not promo.active
    assert promo.submitted_at is not None


def test_update_promotion_cannot_activate_unapproved():
    state = reduce(initial_state(), a.AddPromotion(promotion()))
    sneaky = state.promotions[0].model_copy(update={"active": True})
    after = reduce(state, a.UpdatePromotion(sneaky))
    assert not after.promotions[0].active


def test_reject_promotion_records_reason():
    state = run(
        initial_state(),
        a.AddPromotion(promotion()),
        a.RejectPromotion("promo1", ADMIN, reason="discount too deep"),
    )
    promo = state.promotions[0]
    assert promo.status == ModerationStatus.REJECTED
    assert promo.rejection_reason == "discount too deep"
    assert promo.reviewed_by == ADMIN
    assert not promo.active


# --------------------------------------------------------------------------- #
# Returns, tickets, settings
# --------------------------------------------------------------------------- #

def test_approve_return_sets_processing_fields():
    at = T0 + timedelta(days=1)
    state = run(
        initial_state(),
        a.AddReturnRequest(return_request("r1")),
        a.ApproveReturnRequest("r1", SUPPORT, approved_amount=120.0, refund_method="credit", at=at),
    )
    req = state.return_requests[0]
    assert req.status == ReturnStatus.APPROVED
    assert req.approved_amount == 120.0
    assert req.processed_by == SUPPORT
    assert req.processed_at == at


def test_update_ticket_stamps_updated_at():
    at = T0 + timedelta(hours=3)
    state = run(initial_state(), a.AddTicket(ticket("t1")))
    after = reduce(state, a.UpdateTicket(ticket("t1", priority=Priority.HIGH), at=at))
    assert after.tickets[0].updated_at == at


def test_settings_update_and_reset():
    state = reduce(initial_state(), a.UpdatePlatformSettings({"commission_rate": 7.5, "maintenance_mode": True}))
    assert state.platform_settings.commission_rate == 7.5
    assert state.platform_settings.maintenance_mode
    assert state.platform_settings.minimum_order_value == 100

    state = reduce(state, a.ResetSettingsToDefault())
    assert state.platform_settings == DEFAULT_PLATFORM_SETTINGS


def test_settings_update_rejects_unknown_keys():
    with pytest.raises(ValidationError):
        a.UpdatePlatformSettings({"dark_mode": True})


def test_system_stats_partial_update():
    state = reduce(initial_state(), a.UpdateSystemStats({"active_sessions": 10}))
    assert state.system_stats.active_sessions == 10
    assert state.system_stats.server_uptime == 99.8


def test_replace_collection_rejects_unknown_name():
    result = reduce_with_result(initial_state(), a.ReplaceCollection("widgets", ()))
    assert not result.applied


def test_non_action_is_a_programming_error():
    with pytest.raises(TypeError):
        reduce(initial_state(), object())


# --------------------------------------------------------------------------- #
# Determinism
# --------------------------------------------------------------------------- #

def test_replaying_the_same_actions_gives_equal_states():
    actions = [
        a.AddPendingUser(pending_user("pu1")),
        a.ApproveUser("pu1", ADMIN, new_user_id="u-new"),
        a.AddProduct(product("p1")),
        a.AddPromotion(promotion()),
        a.ApprovePromotion("promo1", ADMIN),
        a.AddOrder(order("o1")),
        a.UpdateOrder(order("o1", status=OrderStatus.ACCEPTED)),
        a.AddReturnRequest(return_request("r1", priority=Priority.URGENT)),
        a.MarkAllNotificationsRead(WHOLESALER),
    ]
    assert run(initial_state(), *actions) == run(initial_state(), *actions)


def test_active_promotions_are_always_approved():
    state = run(
        initial_state(),
        a.AddPromotion(promotion("a")),
        a.AddPromotion(promotion("b")),
        a.ApprovePromotion("a", ADMIN),
        a.UpdatePromotion(promotion("b", active=True)),
        a.RejectPromotion("a", ADMIN, reason="expired"),
    )
    assert all(p.status == ModerationStatus.APPROVED for p in state.promotions if p.active)
