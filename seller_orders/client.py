import logging
from typing import List, Optional

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from seller_orders.config import API_BASE_URL, HTTP_TIMEOUT
from seller_orders.errors import (
    AlreadyAssigned,
    NetworkFailure,
    NotFound,
    OrderWorkflowError,
    ValidationError,
)
from seller_orders.schemas import DispatchResult, OrderItemRead, OrderRead, StoreRead

logger = logging.getLogger(__name__)

_orders = TypeAdapter(List[OrderRead])
_items = TypeAdapter(List[OrderItemRead])
_stores = TypeAdapter(List[StoreRead])
_order = TypeAdapter(OrderRead)
_dispatch = TypeAdapter(DispatchResult)


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return response.reason_phrase


def _json(response: httpx.Response):
    try:
        return response.json()
    except ValueError as e:
        raise NetworkFailure(f"Unreadable response from {response.request.url.path}: {response.status_code}") from e


def _validate(adapter, body, response: httpx.Response):
    try:
        return adapter.validate_python(body)
    except PydanticValidationError as e:
        raise OrderWorkflowError(
            f"Unexpected response from {response.request.url.path}: {e.error_count()} invalid field(s)"
        ) from e


def _parse(adapter, response: httpx.Response):
    """Decode and validate a 2xx body, malformed payloads become workflow errors."""
    return _validate(adapter, _json(response), response)


def raise_for_status(response: httpx.Response) -> None:
    """Map a non-2xx response onto the workflow error taxonomy."""
    if response.is_success:
        return
    detail = _detail(response)
    if response.status_code == 404:
        raise NotFound(detail)
    if response.status_code in (400, 422):
        raise ValidationError(detail)
    if response.status_code == 409:
        raise AlreadyAssigned(detail)
    if response.status_code >= 500:
        raise NetworkFailure(f"{response.status_code} {detail}")
    raise OrderWorkflowError(f"{response.status_code} {detail}")


class OrderApiClient:
    """Seller-side client for the order service REST API.

    Only the order list read is retried; status updates and notifications are
    sent once and any failure goes back to the caller.
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        timeout: float = HTTP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        await self._http.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise NetworkFailure(f"{method} {url} failed: {e}") from e

    async def stores_for_owner(self, owner_id: int) -> List[StoreRead]:
        response = await self._request("GET", f"/api/stores/owner/{owner_id}")
        raise_for_status(response)
        return _parse(_stores, response)

    @retry(
        retry=retry_if_exception_type(NetworkFailure),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=2),
        reraise=True,
    )
    async def list_store_orders(self, store_id: int) -> List[OrderRead]:
        response = await self._request("GET", f"/api/orders/store/{store_id}")
        if response.status_code == 404:
            # Unknown store or no orders yet
            return []
        raise_for_status(response)
        body = _json(response)
        if not isinstance(body, list):
            return []
        orders = _validate(_orders, body, response)
        logger.debug(f"Orders fetched for store {store_id}: {len(orders)}")
        return orders

    async def list_order_items(self, order_id: int) -> List[OrderItemRead]:
        response = await self._request("GET", "/api/order-items", params={"orderId": order_id})
        raise_for_status(response)
        return _parse(_items, response)

    async def set_status(self, order_id: int, status: str, store_id: int) -> OrderRead:
        response = await self._request(
            "PUT",
            f"/api/orders/{order_id}/status",
            json={"status": status},
            headers={"X-Store-Id": str(store_id)},
        )
        raise_for_status(response)
        return _parse(_order, response)

    async def notify_partners(
        self,
        order_id: int,
        message: str,
        is_assigned: bool = False,
        store_id: Optional[int] = None,
    ) -> DispatchResult:
        response = await self._request(
            "POST",
            "/api/delivery-partners/notify",
            json={"orderId": order_id, "message": message, "isAssigned": is_assigned, "storeId": store_id},
        )
        raise_for_status(response)
        return _parse(_dispatch, response)
