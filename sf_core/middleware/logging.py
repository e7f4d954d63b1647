"""
请求日志中间件

记录每个入站 API 请求：方法、路径、查询参数、状态码和耗时，
并通过 X-Trace-Id 响应头返回 trace_id。
"""
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from sf_core.utils.logger import get_logger, LogContext


# 不记录查询参数的路径
SKIP_DETAIL_PATHS = {
    "/healthz",
    "/favicon.ico",
}

# 敏感查询参数
SENSITIVE_FIELDS = {"token", "access_token", "authorization", "secret"}


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求日志中间件"""

    def __init__(self, app, logger=None):
        super().__init__(app)
        self.logger = logger or get_logger("middleware.logging")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # 沿用上游传入的 trace_id，否则生成新的
        trace_id = request.headers.get("x-trace-id") or str(uuid.uuid4())
        request.state.trace_id = trace_id

        method = request.method
        path = request.url.path
        skip_detail = path in SKIP_DETAIL_PATHS
        start_time = time.perf_counter()

        with LogContext(trace_id=trace_id):
            log_data = {
                "direction": "inbound",
                "method": method,
                "path": path,
                "client_ip": self._get_client_ip(request),
            }
            if request.query_params and not skip_detail:
                log_data["query_params"] = self._mask_sensitive(dict(request.query_params))

            self.logger.info("API request", **log_data)

            try:
                response = await call_next(request)
            except Exception as e:
                self.logger.error(
                    "API request failed",
                    direction="inbound",
                    method=method,
                    path=path,
                    latency_ms=self._elapsed_ms(start_time),
                    result="error",
                    err=str(e),
                    exc_info=True
                )
                raise

            resp_log_data = {
                "direction": "inbound",
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "latency_ms": self._elapsed_ms(start_time),
                "result": "success" if response.status_code < 400 else "error",
                "user_id": getattr(request.state, "user_id", None),
            }

            if response.status_code >= 500:
                self.logger.error("API response error", **resp_log_data)
            elif response.status_code >= 400:
                self.logger.warning("API response error", **resp_log_data)
            else:
                self.logger.info("API response", **resp_log_data)

            response.headers["X-Trace-Id"] = trace_id
            return response

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.perf_counter() - start_time) * 1000)

    def _mask_sensitive(self, data: dict) -> dict:
        """脱敏敏感字段"""
        return {
            key: "***MASKED***" if key.lower() in SENSITIVE_FIELDS else value
            for key, value in data.items()
        }

    def _get_client_ip(self, request: Request) -> Optional[str]:
        """获取客户端 IP"""
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

        return request.client.host if request.client else None
