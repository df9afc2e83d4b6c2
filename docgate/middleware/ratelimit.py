import time
import asyncio
from collections import deque
from typing import Callable, Iterable
from fastapi import Request
from fastapi.responses import JSONResponse
from docgate.utils.security import token_digest, unsign_session_cookie

class RateLimitMiddleware:
    def __init__(
        self,
        app,
        *,
        window_seconds: int,
        max_calls: int,
        key_func: Callable[[Request], str],
        include_path_prefixes: Iterable[str] = ("/documents/upload", "/billings", "/auth/login"),
    ):
        self.app = app
        self.window = window_seconds
        self.max_calls = max_calls
        self.key_func = key_func
        self.include_paths = tuple(include_path_prefixes)

        self._buckets: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()
        self._next_sweep = 0.0

    def _should_guard(self, path: str) -> bool:
        return any(path.startswith(p) for p in self.include_paths)

    def _sweep(self, now: float) -> None:
        # session keys rotate on every login; drop buckets whose calls all aged out
        cutoff = now - self.window
        for key in [k for k, q in self._buckets.items() if not q or q[-1] < cutoff]:
            del self._buckets[key]
        self._next_sweep = now + self.window

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        path = scope.get("path", "")
        if not self._should_guard(path):
            return await self.app(scope, receive, send)

        request = Request(scope, receive=receive)
        key = self.key_func(request)

        now = time.time()
        async with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            q = self._buckets.get(key)
            if q is None:
                q = deque()
                self._buckets[key] = q

            cutoff = now - self.window
            while q and q[0] < cutoff:
                q.popleft()

            if len(q) >= self.max_calls:
                retry_after = max(1, int(q[0] + self.window - now))
                resp = JSONResponse(
                    status_code=429,
                    content={
                        "error": "rate_limited",
                        "detail": "Too Many Requests",
                        "window_seconds": self.window,
                        "max_calls": self.max_calls,
                        "try_again_in": retry_after,
                    },
                )
                resp.headers["Retry-After"] = str(retry_after)
                return await resp(scope, receive, send)

            q.append(now)

        return await self.app(scope, receive, send)


def make_key_func(cookie_name: str) -> Callable[[Request], str]:
    def _key(req: Request) -> str:
        ip = req.client.host if req.client else "unknown"

        raw = req.headers.get("authorization", "")
        if raw.lower().startswith("bearer "):
            raw = raw.split(" ", 1)[1].strip()
        else:
            raw = req.cookies.get(cookie_name, "")
        # only a cookie that verifies gets its own bucket; forged ones share the IP bucket
        token = unsign_session_cookie(raw)
        if token:
            return f"session:{token_digest(token)[:16]}"

        return f"ip:{ip}"
    return _key
