"""
Circuit breaker with Redis-backed state and health counters.

One breaker per external service ('openai' for the analysis agent, 'r2' for
artifact uploads). States:
  - CLOSED    → calls pass through
  - OPEN      → failure_threshold consecutive failures; calls raise CircuitOpenError
  - HALF_OPEN → reset_timeout after the last failure; the next call is a trial

State lives in Redis so every RQ worker shares it. If Redis itself is
unreachable the breaker fails open (calls are allowed). Health counters
back the /api/health endpoint.
"""
import logging
import time
from functools import wraps

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'


class CircuitOpenError(Exception):
    """Raised when calling through an open circuit breaker."""
    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is OPEN — service unavailable")


class CircuitBreaker:
    """
    Usage:
        cb = CircuitBreaker('openai', redis_client, failure_threshold=5, reset_timeout=60)
        reply = cb.call(client.chat.completions.create, model=..., messages=...)
    """

    PREFIX = 'cb'

    def __init__(self, name, redis_client, failure_threshold=3, reset_timeout=300):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout

    def _key(self, suffix):
        return f'{self.PREFIX}:{self.name}:{suffix}'

    def _pipeline(self, *ops):
        """Run (method, *args) ops in one Redis pipeline; Redis errors are logged at debug."""
        try:
            pipe = self.redis.pipeline()
            for method, *args in ops:
                getattr(pipe, method)(*args)
            pipe.execute()
        except Exception as e:
            logger.debug("Circuit '%s' Redis write failed: %s", self.name, e)

    # ── State ─────────────────────────────────────────────────────────────

    @property
    def state(self):
        try:
            current = self.redis.get(self._key('state')) or CLOSED
            if current == OPEN and self._seconds_since_failure() > self.reset_timeout:
                self._pipeline(('set', self._key('state'), HALF_OPEN))
                return HALF_OPEN
            return current
        except Exception:
            return CLOSED

    @property
    def failure_count(self):
        try:
            return int(self.redis.get(self._key('failures')) or 0)
        except Exception:
            return 0

    def _seconds_since_failure(self):
        last = self.redis.get(self._key('last_failure'))
        return time.time() - float(last) if last else float('inf')

    # ── Calls ─────────────────────────────────────────────────────────────

    def call(self, func, *args, **kwargs):
        """Execute func through the breaker."""
        if self.state == OPEN:
            elapsed = self._seconds_since_failure()
            retry_after = max(0, self.reset_timeout - elapsed) if elapsed != float('inf') else None
            raise CircuitOpenError(self.name, retry_after=retry_after)

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result

    def protect(self, func):
        """Decorator form of call()."""
        @wraps(func)
        def wrapper(*args, **kwargs):
            return self.call(func, *args, **kwargs)
        return wrapper

    def _on_success(self):
        self._pipeline(
            ('set', self._key('state'), CLOSED),
            ('set', self._key('failures'), 0),
            ('hincrby', self._key('health'), 'success', 1),
            ('hset', self._key('health'), 'last_success', str(time.time())),
        )

    def _on_failure(self, error):
        now = str(time.time())
        try:
            count = self.redis.incr(self._key('failures'))
            self.redis.set(self._key('last_failure'), now)
            if count >= self.failure_threshold:
                self.redis.set(self._key('state'), OPEN)
                logger.warning("Circuit '%s' OPENED after %d failures (threshold=%d): %s",
                               self.name, count, self.failure_threshold, error)
            else:
                logger.info("Circuit '%s' failure %d/%d: %s", self.name, count, self.failure_threshold, error)
        except Exception as e:
            logger.debug("Circuit '%s' Redis write failed: %s", self.name, e)
        self._pipeline(
            ('hincrby', self._key('health'), 'failure', 1),
            ('hset', self._key('health'), 'last_failure', now),
            ('hset', self._key('health'), 'last_error', str(error)[:200]),
        )

    def reset(self):
        """Manually close the breaker."""
        self._pipeline(
            ('set', self._key('state'), CLOSED),
            ('set', self._key('failures'), 0),
            ('delete', self._key('last_failure')),
        )
        logger.info("Circuit '%s' manually reset to CLOSED", self.name)

    # ── Health ────────────────────────────────────────────────────────────

    def get_health(self):
        """Health metrics dict for /api/health."""
        health = {
            'name': self.name,
            'state': 'unknown',
            'failure_count': 0,
            'failure_threshold': self.failure_threshold,
            'reset_timeout': self.reset_timeout,
            'total_success': 0,
            'total_failure': 0,
            'last_success': None,
            'last_failure': None,
            'last_error': '',
        }
        try:
            data = self.redis.hgetall(self._key('health'))
            health.update({
                'state': self.state,
                'failure_count': self.failure_count,
                'total_success': int(data.get('success', 0)),
                'total_failure': int(data.get('failure', 0)),
                'last_success': float(data['last_success']) if data.get('last_success') else None,
                'last_failure': float(data['last_failure']) if data.get('last_failure') else None,
                'last_error': data.get('last_error', ''),
            })
        except Exception as e:
            logger.debug("Circuit '%s' health read failed: %s", self.name, e)
        return health


# ── Registry ──────────────────────────────────────────────────────────────────

_registry = {}

# name → (failure_threshold, reset_timeout seconds)
DEFAULT_BREAKERS = {
    'openai': (5, 60),
    'r2': (3, 120),
}


def get_breaker(name, redis_client=None, **kwargs):
    """Get or create a named breaker (singleton per name)."""
    if name not in _registry:
        if redis_client is None:
            from app.extensions import redis_client as rc
            redis_client = rc
        if not kwargs and name in DEFAULT_BREAKERS:
            threshold, timeout = DEFAULT_BREAKERS[name]
            kwargs = {'failure_threshold': threshold, 'reset_timeout': timeout}
        _registry[name] = CircuitBreaker(name, redis_client, **kwargs)
    return _registry[name]


def get_all_breakers():
    return dict(_registry)


def init_breakers(redis_client):
    """Register the breakers for the engine's external services."""
    breakers = {
        name: CircuitBreaker(name, redis_client, failure_threshold=threshold, reset_timeout=timeout)
        for name, (threshold, timeout) in DEFAULT_BREAKERS.items()
    }
    _registry.update(breakers)
    return breakers
