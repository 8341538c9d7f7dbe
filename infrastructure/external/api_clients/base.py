"""
REST API客户端基类

目录服务（MailerLite）与告警（Telegram）适配器共用：
- 幂等请求的自动重试（网络错误、429/5xx）
- 错误分类
- 超时控制
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


@dataclass
class APIResponse:
    """API响应封装"""
    status_code: int
    headers: Dict[str, str]
    data: Any
    raw_content: bytes

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


class APIError(Exception):
    """API错误基类"""
    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[APIResponse] = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)

    def __str__(self):
        if self.status_code:
            return f"{self.message} | Status: {self.status_code}"
        return self.message


class AuthenticationError(APIError):
    pass


class NotFoundError(APIError):
    pass


class RetryableAPIError(APIError):
    """可重试的API错误"""

    def __init__(self, message: str, status_code: Optional[int], response: Optional[APIResponse], retry_after: Optional[float] = None):
        super().__init__(message=message, status_code=status_code, response=response)
        self.retry_after = retry_after


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
# 非幂等请求只在连接未建立时重试
IDEMPOTENT_METHODS = {"GET", "HEAD", "PUT", "DELETE", "OPTIONS"}


class BaseAPIClient:
    """
    REST API客户端基类

    子类通过 get/post/delete 调用具体接口；``transport`` 可注入
    httpx.MockTransport 用于测试。
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        retry_delay: float = 0.5,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._transport = transport

        self.default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "stkpush-enrollment/1.0",
        }
        if headers:
            self.default_headers.update(headers)
        if auth_token:
            self.default_headers["Authorization"] = f"Bearer {auth_token}"

        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _wait(self, retry_state) -> float:
        """指数退避；429 的 Retry-After 仅在确实会重试时生效"""
        delay = wait_exponential(multiplier=self.retry_delay, min=self.retry_delay, max=self.retry_delay * 8)(retry_state)
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RetryableAPIError) and exc.retry_after:
            delay = max(delay, min(exc.retry_after, self.timeout))
        return delay

    def _build_url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _raise_for_error(self, response: APIResponse):
        error_class = {401: AuthenticationError, 403: AuthenticationError, 404: NotFoundError}.get(response.status_code, APIError)
        message = f"API request failed with status {response.status_code}"
        if isinstance(response.data, dict):
            message = response.data.get("message") or response.data.get("description") or response.data.get("error") or message
        raise error_class(message=str(message), status_code=response.status_code, response=response)

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> APIResponse:
        """
        发送HTTP请求

        Raises:
            APIError: 超时、网络错误或非 2xx 响应
        """
        method = method.upper()
        url = self._build_url(endpoint)
        request_headers = {**self.default_headers, **(headers or {})}

        async def _send_once() -> APIResponse:
            response = await self.client.request(method, url, params=params, json=json_data, headers=request_headers)

            response_data = None
            if "application/json" in response.headers.get("content-type", ""):
                try:
                    response_data = response.json()
                except json.JSONDecodeError:
                    response_data = None

            api_response = APIResponse(
                status_code=response.status_code,
                headers=dict(response.headers),
                data=response_data,
                raw_content=response.content,
            )

            if api_response.status_code in RETRY_STATUS_CODES:
                retry_after: Optional[float] = None
                if api_response.status_code == 429:
                    try:
                        retry_after = float(api_response.headers.get("retry-after") or 0) or None
                    except (TypeError, ValueError):
                        retry_after = None
                raise RetryableAPIError(
                    message=f"Transient API error with status {api_response.status_code}",
                    status_code=api_response.status_code,
                    response=api_response,
                    retry_after=retry_after,
                )

            if api_response.is_error:
                self._raise_for_error(api_response)
            return api_response

        if method in IDEMPOTENT_METHODS:
            retry_on = (httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)
        else:
            retry_on = (httpx.ConnectError, httpx.ConnectTimeout)

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._wait,
            retry=retry_if_exception_type(retry_on),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await _send_once()
        except httpx.TimeoutException as exc:
            raise APIError(f"Request timeout after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise APIError(f"Network error: {exc}") from exc
        except RetryableAPIError as exc:
            raise APIError(exc.message, status_code=exc.status_code, response=exc.response) from exc
        raise APIError("request not attempted")

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("GET", endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("POST", endpoint, **kwargs)

    async def delete(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("DELETE", endpoint, **kwargs)
