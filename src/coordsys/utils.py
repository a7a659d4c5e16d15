"""
utils.py

Small helpers shared by the coordinate modules: numeric closeness tests
used by the batched transforms, and the package logging helpers.

The public helpers:
- `near(a, b, tol)` : relative closeness of two scalars
- `columns_near(a, b, tol)` : elementwise `near` over two vectors
- `as_vector(values, n, what)` / `as_flags(...)` : length-checked copies
- `safe_log_exception(msg, exc, **ctx)` : logs exceptions robustly
- `configure_logging(level)` : console handler on the package logger

"""

from typing import Any
import sys
import logging
import numpy as np

from coordsys.config import TOLERANCES

logger = logging.getLogger(__name__)


def near(a: float, b: float, tol: float = TOLERANCES['repeat']) -> bool:
	"""Return True if `a` and `b` agree to relative tolerance `tol`.

	Exact equality always counts as near, so zeros compare cleanly.
	"""
	if a == b:
		return True
	return abs(a - b) <= tol * max(abs(a), abs(b))


def columns_near(a: np.ndarray, b: np.ndarray, tol: float = TOLERANCES['repeat']) -> bool:
	"""Elementwise `near` over two equal-length vectors."""
	a = np.asarray(a, dtype=float)
	b = np.asarray(b, dtype=float)
	if a.shape != b.shape:
		return False
	same = (a == b) | (np.abs(a - b) <= tol * np.maximum(np.abs(a), np.abs(b)))
	return bool(np.all(same))


def as_vector(values: Any, n: int, what: str) -> np.ndarray:
	"""Copy ``values`` into a float vector of length ``n`` or raise ValueError."""
	v = np.array(values, dtype=float).reshape(-1)
	if v.shape[0] != n:
		raise ValueError(f'{what} must have {n} elements, got {v.shape[0]}')
	return v


def as_flags(values: Any, n: int, what: str) -> np.ndarray:
	v = np.array(values, dtype=bool).reshape(-1)
	if v.shape[0] != n:
		raise ValueError(f'{what} must have {n} elements, got {v.shape[0]}')
	return v


def safe_log_exception(msg: str, exc: Exception, **ctx: Any) -> None:
	"""Log an exception robustly.

	Attempts to call `logger.exception`. If logging fails for any reason,
	falls back to writing a compact message to `sys.stderr`.
	"""
	try:
		if ctx:
			ctx_s = ' | '.join(f"{k}={v!r}" for k, v in ctx.items())
			logger.exception('%s | %s | %s', msg, exc, ctx_s)
		else:
			logger.exception('%s | %s', msg, exc)
	except Exception:
		try:
			sys.stderr.write(f'LOGGING FAILURE: {msg} {exc}\n')
		except Exception:
			pass


def configure_logging(level: int = logging.INFO) -> logging.Logger:
	"""Attach a console handler to the ``coordsys`` logger.

	Safe to call repeatedly; a handler is only added the first time.
	"""
	log = logging.getLogger('coordsys')
	if not log.handlers:
		h = logging.StreamHandler(sys.stdout)
		h.setFormatter(logging.Formatter('[%(levelname)s] %(message)s'))
		log.addHandler(h)
	log.setLevel(level)
	for h in log.handlers:
		h.setLevel(level)
	return log
