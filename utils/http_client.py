# SPDX-License-Identifier: Apache-2.0
#
# Copyright (c) 2024-2025 PrefSync Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
可重试的异步 HTTP 客户端

包装 httpx.AsyncClient，支持指数退避和速率限制处理。
重试次数为 0 时每个请求只发送一次。
"""

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable, Optional, Set

import httpx

logger = logging.getLogger("prefsync.utils.http_client")

# 网络层可重试的异常类型
NETWORK_ERRORS = (
    httpx.ConnectError,
    httpx.TimeoutException,
    httpx.NetworkError,
)


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    """
    从响应头获取 Retry-After 时间

    Args:
        response: HTTP 响应对象

    Returns:
        重试等待时间（秒），如果没有则返回 None
    """
    retry_after = response.headers.get("Retry-After")
    if not retry_after:
        return None

    try:
        # Retry-After 可能是秒数
        return float(retry_after)
    except ValueError:
        pass

    # 或者是 HTTP 日期格式
    try:
        retry_date = parsedate_to_datetime(retry_after)
    except (TypeError, ValueError) as e:
        logger.warning(f"Failed to parse Retry-After header: {retry_after}, error: {e}")
        return None

    delta = (retry_date - datetime.now(timezone.utc)).total_seconds()
    return max(0.0, delta)


class AsyncRetryableHttpClient:
    """
    异步可重试的 HTTP 客户端

    - 指数退避重试策略
    - 速率限制处理（429 错误）
    - 超时处理
    """

    # 可重试的 HTTP 状态码
    RETRYABLE_STATUS_CODES = {
        408,  # Request Timeout
        429,  # Too Many Requests
        500,  # Internal Server Error
        502,  # Bad Gateway
        503,  # Service Unavailable
        504,  # Gateway Timeout
    }

    def __init__(
        self,
        max_retries: int = 0,
        timeout: float = 10.0,
        base_delay: float = 1.0,
        max_retry_after: Optional[float] = 60.0,
        retryable_status_codes: Optional[Iterable[int]] = None,
        **client_kwargs
    ):
        """
        初始化异步可重试的 HTTP 客户端

        Args:
            max_retries: 最大重试次数（默认 0，不重试）
            timeout: 请求超时时间（秒，默认 10）
            base_delay: 基础延迟时间（秒，默认 1）
            max_retry_after: 429 响应允许的最大 Retry-After 秒数，None 表示不限制
            retryable_status_codes: 自定义可重试的 HTTP 状态码集合
            **client_kwargs: 传递给 httpx.AsyncClient 的其他参数（如 base_url、transport）
        """
        self.max_retries = max_retries
        self.timeout = timeout
        self.base_delay = base_delay
        self.max_retry_after = max_retry_after
        self.retryable_status_codes: Set[int] = (
            set(retryable_status_codes)
            if retryable_status_codes is not None
            else set(self.RETRYABLE_STATUS_CODES)
        )

        if "timeout" not in client_kwargs:
            client_kwargs["timeout"] = timeout

        self.client = httpx.AsyncClient(**client_kwargs)

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()

    async def close(self):
        """关闭客户端"""
        await self.client.aclose()

    def _calculate_delay(self, attempt: int) -> float:
        """计算指数退避延迟时间：1s, 2s, 4s, ..."""
        return self.base_delay * (2 ** attempt)

    def _status_delay(self, response: httpx.Response, attempt: int) -> Optional[float]:
        """
        计算 HTTP 状态错误的重试延迟

        Returns:
            延迟秒数；None 表示不应重试
        """
        if response.status_code not in self.retryable_status_codes:
            return None

        if response.status_code == 429:
            retry_after = parse_retry_after(response)
            if retry_after:
                if self.max_retry_after is not None and retry_after > self.max_retry_after:
                    logger.error(
                        "Rate limit retry time too long (%ss > %ss), not retrying",
                        retry_after,
                        self.max_retry_after,
                    )
                    return None
                return retry_after

        return self._calculate_delay(attempt)

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        发送异步 HTTP 请求，带自动重试

        Args:
            method: HTTP 方法（GET, PUT, etc.）
            url: 请求 URL
            **kwargs: 传递给 httpx 的其他参数

        Returns:
            HTTP 响应对象

        Raises:
            httpx.HTTPError: 请求失败且重试次数用尽
        """
        attempt = 0
        while True:
            try:
                response = await self.client.request(method, url, **kwargs)
                response.raise_for_status()
                if attempt > 0:
                    logger.info(f"Request succeeded after {attempt} retries: {method} {url}")
                return response

            except httpx.HTTPStatusError as e:
                delay = self._status_delay(e.response, attempt)
                if delay is None or attempt >= self.max_retries:
                    logger.debug(
                        f"Giving up on HTTP error {e.response.status_code}: {method} {url}"
                    )
                    raise
                logger.warning(
                    f"HTTP error {e.response.status_code}, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )

            except NETWORK_ERRORS as e:
                if attempt >= self.max_retries:
                    logger.debug(f"Giving up on network error {type(e).__name__}: {method} {url}")
                    raise
                delay = self._calculate_delay(attempt)
                logger.warning(
                    f"Network error: {type(e).__name__}, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )

            await asyncio.sleep(delay)
            attempt += 1

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """发送异步 GET 请求"""
        return await self.request("GET", url, **kwargs)

    async def put(self, url: str, **kwargs) -> httpx.Response:
        """发送异步 PUT 请求"""
        return await self.request("PUT", url, **kwargs)
