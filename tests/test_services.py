from decimal import Decimal

import pytest

from address_api import AddressService, pick_default
from auth_api import AuthService
from catalog_api import CatalogService
from graph_interfaces import OrderStatus
from orders_api import OrderService
from utils.errors import ErrorKind

from conftest import fail, make_token, ok


@pytest.fixture
def auth(gateway, session_manager) -> AuthService:
    return AuthService(gateway, session_manager)


# auth
async def test_login_establishes_session(auth, session_manager, store, transport):
    token = make_token()
    transport.add("POST", "/auth/login", ok({"accessToken": token, "user": {"name": "Asha"}}, "Welcome"))

    result = await auth.login("asha@storefront.in", "secret123")

    assert result.success
    assert session_manager.acquire() == token
    assert store.load() == token
    assert auth.current_customer() == {"name": "Asha"}
    assert transport.calls[0].form == {"email": "asha@storefront.in", "password": "secret123"}


async def test_login_rejects_bad_email_locally(auth, transport):
    result = await auth.login("not-an-email", "secret123")
    assert result.error == ErrorKind.VALIDATION
    assert transport.calls == []


async def test_login_wrong_password_is_business_error(auth, session_manager, transport):
    transport.add("POST", "/auth/login", fail("Invalid credentials", status=400))

    result = await auth.login("asha@storefront.in", "wrong")

    assert result.error == ErrorKind.BUSINESS
    assert result.message == "Invalid credentials"
    assert not session_manager.is_authenticated


async def test_login_response_without_token_is_network_error(auth, session_manager, transport):
    transport.add("POST", "/auth/login", ok({"user": {"name": "Asha"}}))
    result = await auth.login("asha@storefront.in", "secret123")
    assert result.error == ErrorKind.NETWORK
    assert session_manager.acquire() is None


async def test_send_otp_validates_phone(auth, transport):
    result = await auth.send_otp("12345")
    assert result.error == ErrorKind.VALIDATION
    assert transport.calls == []


async def test_verify_otp_establishes_session(auth, session_manager, transport):
    token = make_token()
    transport.add("POST", "/auth/verify-otp", ok({"accessToken": token, "user": {"phone": "9876543210"}}))

    result = await auth.verify_otp("9876543210", "1234")

    assert result.success
    assert session_manager.acquire() == token
    assert transport.calls[0].form == {"phone": "9876543210", "otp": "1234"}


async def test_register_requires_password_length(auth, transport):
    result = await auth.register(name="Asha", email="asha@storefront.in", phone="9876543210", password="123")
    assert result.error == ErrorKind.VALIDATION
    assert "password" in result.message
    assert transport.calls == []


async def test_logout_tears_down_even_when_api_fails(auth, session_manager, store, transport, logged_in):
    transport.add("POST", "/auth/logout", (503, None))

    result = await auth.logout()

    assert result.error == ErrorKind.NETWORK
    assert session_manager.acquire() is None
    assert store.load() is None


async def test_update_profile_refreshes_customer(auth, session_manager, transport, logged_in):
    transport.add("PATCH", "/profile", ok({"id": 1, "name": "Asha K"}))

    result = await auth.update_profile(name="Asha K")

    assert result.success
    assert session_manager.customer == {"id": 1, "name": "Asha K"}
    assert transport.calls[0].form == {"name": "Asha K"}


async def test_change_password_mismatch(auth, transport, logged_in):
    result = await auth.change_password("old-pass", "new-pass-1", "new-pass-2")
    assert result.error == ErrorKind.VALIDATION
    assert transport.calls == []


async def test_change_password_sends_camel_case_fields(auth, transport, logged_in):
    transport.add("POST", "/auth/change-password", ok(message="Password updated"))
    result = await auth.change_password("old-pass", "new-pass-1", "new-pass-1")
    assert result.success
    assert transport.calls[0].form == {"oldPassword": "old-pass", "newPassword": "new-pass-1"}


# catalog
async def test_get_category_uses_id_query(gateway, transport):
    transport.add("GET", "/categories/category", ok({"id": 3}))
    await CatalogService(gateway).get_category(3)
    assert transport.calls[0].params == [("id", "3")]


async def test_browse_prefers_category_filter(gateway, transport):
    transport.add("GET", "/categories/products/3", ok([]))
    await CatalogService(gateway).browse(category_id=3, subcategory_id=9)
    assert [c.path for c in transport.calls] == ["/categories/products/3"]


async def test_get_coupon_escapes_code(gateway, transport):
    transport.add("GET", "/coupons/A%2FB", ok({"code": "A/B"}))
    result = await CatalogService(gateway).get_coupon(" A/B ")
    assert result.success


async def test_get_coupon_empty_response_is_invalid(gateway, transport):
    transport.add("GET", "/coupons/GHOST", ok(None))
    result = await CatalogService(gateway).get_coupon("GHOST")
    assert result.error == ErrorKind.BUSINESS


# addresses
def test_pick_default():
    addresses = [{"id": 1, "is_default": False}, {"id": 2, "is_default": True}]
    assert pick_default(addresses)["id"] == 2
    assert pick_default([]) is None


async def test_select_for_checkout_returns_default_id(gateway, transport, logged_in):
    transport.add("GET", "/addresses", ok([{"id": 1, "is_default": False}, {"id": 2, "is_default": True}]))
    assert await AddressService(gateway).select_for_checkout() == "2"


async def test_create_address_validates_pincode(gateway, transport, logged_in):
    result = await AddressService(gateway).create(address="12 MG Road", city="Pune", state="MH", pincode="4110")
    assert result.error == ErrorKind.VALIDATION
    assert transport.calls == []


async def test_create_address_sends_form(gateway, transport, logged_in):
    transport.add("POST", "/addresses", ok({"id": 9}))
    result = await AddressService(gateway).create(address="12 MG Road", city="Pune", state="MH", pincode="411001")
    assert result.success
    assert transport.calls[0].form == {
        "address": "12 MG Road", "city": "Pune", "state": "MH", "pincode": "411001",
        "country": "India", "is_default": "false",
    }


# orders
async def test_create_order_parses_response(gateway, transport, logged_in):
    transport.add("POST", "/orders", ok({"order": {"id": 7, "final_total": "265.00", "delivery_status": "pending"}}))

    result = await OrderService(gateway).create(
        address_id="5", cartSummary={"subtotal": "300"}, delivery_charge=Decimal("50"), discount=Decimal("100"),
    )

    assert result.data.order_id == "7"
    assert result.data.final_total == Decimal("265.00")


async def test_create_order_rejects_other_payment_modes(gateway, transport, logged_in):
    result = await OrderService(gateway).create(
        address_id="5", payment_mode="card", cartSummary={}, delivery_charge=Decimal("0"),
    )
    assert result.error == ErrorKind.VALIDATION
    assert transport.calls == []


async def test_list_orders_all_omits_status(gateway, transport, logged_in):
    transport.add("GET", "/orders", ok({
        "orders": [{"id": 1, "delivery_status": "shipped"}],
        "pagination": {"currentPage": 1, "totalPages": 3},
    }))

    result = await OrderService(gateway).list(status="all")

    assert transport.calls[0].params == [("page", "1"), ("limit", "10")]
    assert result.data["orders"][0].status == OrderStatus.SHIPPED
    assert result.data["total_pages"] == 3


async def test_list_orders_unknown_filter(gateway, transport, logged_in):
    result = await OrderService(gateway).list(status="lost")
    assert result.error == ErrorKind.VALIDATION
    assert transport.calls == []


async def test_cancel_shipped_order_is_refused_locally(gateway, transport, logged_in):
    result = await OrderService(gateway).cancel(7, known_status="shipped")
    assert result.error == ErrorKind.VALIDATION
    assert transport.calls == []


async def test_cancel_pending_order(gateway, transport, logged_in):
    transport.add("POST", "/orders/cancel/7", ok(message="Order cancelled"))
    result = await OrderService(gateway).cancel(7, known_status="pending")
    assert result.success
