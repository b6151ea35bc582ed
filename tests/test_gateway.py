from decimal import Decimal

import pytest

from utils.errors import (
    AuthError, BusinessError, ErrorKind, GENERIC_NETWORK_MESSAGE, NetworkError,
)
from utils.gateway import encode_query, flatten_form

from conftest import UNAUTHORIZED, fail, ok


def test_flatten_form_uses_bracket_keys():
    pairs = flatten_form({
        "address_id": 7,
        "cartSummary": {"subtotal": Decimal("600.00"), "tax": "30"},
        "tags": ["a", "b"],
        "flag": True,
    })
    assert pairs == [
        ("address_id", "7"),
        ("cartSummary[subtotal]", "600.00"),
        ("cartSummary[tax]", "30"),
        ("tags[0]", "a"),
        ("tags[1]", "b"),
        ("flag", "true"),
    ]


def test_encode_query_drops_none_values():
    assert encode_query({"page": 1, "limit": None}) == [("page", "1")]
    assert encode_query({"status": None}) is None


async def test_bearer_header_attached_when_logged_in(gateway, transport, logged_in):
    transport.add("GET", "/cart", ok({"items": []}))
    await gateway.request("GET", "/cart")
    assert transport.calls[0].headers["Authorization"] == f"Bearer {logged_in}"


async def test_no_authorization_header_when_logged_out(gateway, transport):
    transport.add("GET", "/products", ok([]))
    await gateway.request("GET", "/products")
    assert "Authorization" not in transport.calls[0].headers


async def test_post_body_is_form_encoded(gateway, transport, logged_in):
    transport.add("POST", "/orders", ok({"id": 1}))
    await gateway.request("POST", "/orders", {"cartSummary": {"subtotal": "600.00"}, "payment_mode": "cod"})

    call = transport.calls[0]
    assert call.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert call.form == {"cartSummary[subtotal]": "600.00", "payment_mode": "cod"}


async def test_delete_body_is_json(gateway, transport, logged_in):
    transport.add("DELETE", "/cart/remove", ok())
    await gateway.request("DELETE", "/cart/remove", {"product_variant_id": "12"})

    call = transport.calls[0]
    assert call.headers["Content-Type"] == "application/json"
    assert call.json == {"product_variant_id": "12"}


async def test_query_params_are_passed(gateway, transport):
    transport.add("GET", "/products/paginated", ok([]))
    await gateway.request("GET", "/products/paginated", query={"page": 2, "limit": 20})
    assert transport.calls[0].params == [("page", "2"), ("limit", "20")]


async def test_success_returns_data_and_message(gateway, transport):
    transport.add("GET", "/categories", ok([{"id": 1}], "fetched"))
    result = await gateway.request("GET", "/categories")
    assert result.success
    assert result.data == [{"id": 1}]
    assert result.message == "fetched"


async def test_business_failure_keeps_server_message(gateway, transport, logged_in):
    transport.add("POST", "/cart", fail("Only 2 left in stock", status=400))
    result = await gateway.request("POST", "/cart", {"product_variant_id": "1", "quantity": 5})
    assert result.error == ErrorKind.BUSINESS
    assert result.message == "Only 2 left in stock"


async def test_success_false_with_200_is_business_error(gateway, transport):
    transport.add("GET", "/coupons/SAVE", fail("Coupon not found", status=200))
    with pytest.raises(BusinessError) as exc_info:
        await gateway.send("GET", "/coupons/SAVE")
    assert exc_info.value.message == "Coupon not found"


async def test_server_error_maps_to_generic_network_error(gateway, transport):
    transport.add("GET", "/products", (500, {"success": False, "message": "Traceback: db down"}))
    result = await gateway.request("GET", "/products")
    assert result.error == ErrorKind.NETWORK
    assert result.message == GENERIC_NETWORK_MESSAGE


async def test_non_json_body_maps_to_network_error(gateway, transport):
    transport.add("GET", "/products", (200, None))
    with pytest.raises(NetworkError):
        await gateway.send("GET", "/products")


async def test_transport_failure_maps_to_network_error(gateway, transport):
    transport.add("GET", "/products", NetworkError())
    result = await gateway.request("GET", "/products")
    assert result.error == ErrorKind.NETWORK


async def test_refresh_endpoint_401_is_not_retried(gateway, transport, logged_in):
    transport.add("POST", "/auth/refresh-token", UNAUTHORIZED)
    with pytest.raises(AuthError):
        await gateway.send("POST", "/auth/refresh-token", retry_on_auth=False)
    assert len(transport.calls) == 1


async def test_close_closes_transport(gateway, transport):
    await gateway.close()
    assert transport.closed
