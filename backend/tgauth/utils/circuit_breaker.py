# /tgauth/utils/circuit_breaker.py

import time
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class CircuitOpenError(Exception):
    """Raised instead of calling a dependency whose circuit is open."""


class RedisCircuitBreaker:
    """
    Circuit breaker whose state lives in Redis so every worker process sees
    the same view of an outbound dependency. Without Redis it is a pass-through.
    """

    def __init__(self, redis_client: Any, service_name: str, failure_threshold: int = 5, timeout: int = 60, success_threshold: int = 2):
        self.redis = redis_client
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.failure_key = f"cb_failures:{service_name}"
        self.success_key = f"cb_success:{service_name}"
        self.state_key = f"cb_state:{service_name}"
        self.last_failure_key = f"cb_last_failure:{service_name}"

    async def is_open(self) -> bool:
        try:
            if await self._get_state() != "OPEN":
                return False
            last_failure_raw = await self.redis.get(self.last_failure_key)
            if last_failure_raw and time.time() - float(last_failure_raw) > self.timeout:
                await self._set_state("HALF_OPEN")
                return False
            return True
        except Exception as e:
            logger.error(f"Could not check circuit breaker state for {self.service_name}: {e}")
            return False

    async def call(self, func: Callable, *args: Any, **kwargs: Any) -> Any:
        if not self.redis:
            return await func(*args, **kwargs)

        if await self.is_open():
            raise CircuitOpenError(f"Circuit breaker is OPEN for {self.service_name}")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            await self._on_failure()
            raise
        await self._on_success()
        return result

    async def _get_state(self) -> str:
        state = await self.redis.get(self.state_key)
        return state.decode() if state else "CLOSED"

    async def _set_state(self, state: str):
        await self.redis.set(self.state_key, state, ex=self.timeout * 2)

    async def _on_success(self):
        try:
            if await self._get_state() == "HALF_OPEN":
                success_count = await self.redis.incr(self.success_key)
                if success_count >= self.success_threshold:
                    await self._set_state("CLOSED")
                    await self.redis.delete(self.failure_key, self.success_key)
                    logger.info(f"Circuit breaker has been reset to CLOSED for service: {self.service_name}")
            else:
                await self.redis.delete(self.failure_key)
        except Exception as e:
            logger.error(f"Error in circuit breaker success handler for {self.service_name}: {e}")

    async def _on_failure(self):
        try:
            failure_count = await self.redis.incr(self.failure_key)
            await self.redis.set(self.last_failure_key, str(time.time()), ex=self.timeout * 2)
            if failure_count >= self.failure_threshold:
                await self._set_state("OPEN")
                logger.error(f"Circuit breaker has OPENED for service '{self.service_name}' after {failure_count} failures.")
        except Exception as e:
            logger.error(f"Error in circuit breaker failure handler for {self.service_name}: {e}")
