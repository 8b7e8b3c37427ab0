"""HTTP API client and the record store backed by it.

``APIClient`` wraps ``requests`` with bearer authentication, timeouts and error
mapping. ``HttpRecordStore`` implements the async ``RecordStore`` protocol on
top of a REST backend exposing one collection per table:

    POST   /{table}            create, returns the stored record
    GET    /{table}?field=val  list matching records
    PATCH  /{table}/{id}       update, returns the stored record
    DELETE /{table}/{id}       delete

Blocking HTTP calls are run with ``asyncio.to_thread`` so the event loop (and
the autosave timer) keeps running while a request is outstanding.
"""

import asyncio
from http import HTTPStatus
from typing import Any, Optional

import requests
from survey_assist_utils.logging import get_logger

API_TIMER_SEC = 20
logger = get_logger(__name__, level="INFO")


class APIRequestError(RuntimeError):
    """An API request failed.

    Attributes:
        status_code (int): HTTP status associated with the failure.
    """

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


# pylint: disable=too-many-arguments,too-many-positional-arguments
class APIClient:
    """API client for making HTTP requests to the record store backend."""

    def __init__(self, base_url: str, token: str, logger_handle=None):
        """Initialises the API client with base URL, token, and logger.

        Args:
            base_url (str): The base URL for the API.
            token (str): The authentication token for API requests.
            logger_handle: Logger instance for logging messages.
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.logger_handle = logger_handle or logger

    def _default_headers(self):
        """Returns the default headers for API requests."""
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def get(self, endpoint: str, params: Optional[dict] = None):
        """Sends a GET request and returns the decoded JSON body."""
        return self._request("GET", endpoint, params=params)

    def post(self, endpoint: str, body: Optional[dict] = None):
        """Sends a POST request and returns the decoded JSON body."""
        return self._request("POST", endpoint, body=body)

    def patch(self, endpoint: str, body: Optional[dict] = None):
        """Sends a PATCH request and returns the decoded JSON body."""
        return self._request("PATCH", endpoint, body=body)

    def delete(self, endpoint: str):
        """Sends a DELETE request; the body is not decoded."""
        return self._request("DELETE", endpoint, return_json=False)

    def _request(  # noqa: PLR0913
        self,
        method: str,
        endpoint: str,
        body: Optional[dict] = None,
        params: Optional[dict] = None,
        return_json: bool = True,
    ):
        """Sends an HTTP request to the specified API endpoint.

        Args:
            method (str): One of GET, POST, PATCH or DELETE.
            endpoint (str): Path relative to the base URL.
            body (dict, optional): JSON body.
            params (dict, optional): Query parameters.
            return_json (bool): Whether to decode the response as JSON.

        Returns:
            dict, list or str: The response data.

        Raises:
            APIRequestError: If the request fails for any reason.
        """
        url = f"{self.base_url}{endpoint}"
        self.logger_handle.debug(f"Sending {method} request to {url}")

        if method not in ("GET", "POST", "PATCH", "DELETE"):
            self._handle_error(
                f"Value error: Unsupported method: {method}",
                HTTPStatus.INTERNAL_SERVER_ERROR,
            )

        try:
            response = requests.request(
                method,
                url,
                json=body,
                params=params,
                headers=self._default_headers(),
                timeout=API_TIMER_SEC,
            )
            response.raise_for_status()
            data = response.json() if return_json else response.text
            self.logger_handle.debug(f"Received response from {url}")
            return data

        except requests.exceptions.Timeout as err:
            self._handle_error(
                f"Request to {url} timed out after {API_TIMER_SEC} seconds",
                HTTPStatus.GATEWAY_TIMEOUT,
                err,
            )
        except requests.exceptions.ConnectionError as err:
            self._handle_error(
                f"Failed to connect to API at {url}", HTTPStatus.BAD_GATEWAY, err
            )
        except requests.exceptions.HTTPError as http_err:
            status = http_err.response.status_code if http_err.response is not None else 500
            self._handle_error(f"HTTP error: {status}", status, http_err)
        except ValueError as val_err:
            self._handle_error(
                f"Value error: {val_err}", HTTPStatus.INTERNAL_SERVER_ERROR, val_err
            )

    def _handle_error(self, message: str, status_code: int, cause=None):
        """Logs and raises an API error."""
        self.logger_handle.error(message)
        raise APIRequestError(message, int(status_code)) from cause


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


class HttpRecordStore:
    """Record store backed by a REST API."""

    def __init__(self, api_client: APIClient):
        self.api_client = api_client

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        """Creates a record."""
        return await asyncio.to_thread(self.api_client.post, f"/{table}", record)

    async def select(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        """Lists records matching the filters."""
        params = {field: _query_value(value) for field, value in filters.items()}
        data = await asyncio.to_thread(self.api_client.get, f"/{table}", params)
        if not isinstance(data, list):
            raise ValueError(f"Expected a list of {table}, received {type(data).__name__}")
        return data

    async def update(
        self, table: str, record_id: str, changes: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        """Updates a record; returns None when the backend reports 404."""
        try:
            return await asyncio.to_thread(
                self.api_client.patch, f"/{table}/{record_id}", changes
            )
        except APIRequestError as err:
            if err.status_code == HTTPStatus.NOT_FOUND:
                return None
            raise

    async def delete(self, table: str, record_id: str) -> bool:
        """Deletes a record; returns False when the backend reports 404."""
        try:
            await asyncio.to_thread(self.api_client.delete, f"/{table}/{record_id}")
        except APIRequestError as err:
            if err.status_code == HTTPStatus.NOT_FOUND:
                return False
            raise
        return True
