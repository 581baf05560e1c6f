"""Cache-thrashing and cryptographic CPU workloads.

Both run in batches until ``duration`` seconds have passed, then fold their
throughput into the shared performance record. If ``stop`` is set, they
return without recording anything.
"""

from __future__ import annotations

import hashlib
import math
import queue
import random
import threading
import time

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from sysstress.config import CacheInfo, PerformanceStats
from sysstress.cpu_compute import adjust_batch_size
from sysstress.utils import log_message

_INT64_MIN = -(2**63)
_PAGE_ELEMS = 4096 // 8
_MIN_ARRAY = 1024
_SAMPLE_WALKS = 1000
_CRYPTO_BLOCK = 1024 * 1024
_CRYPTO_ERRORS = (ValueError, TypeError, UnsupportedAlgorithm)


def _wrap(value: int) -> int:
    return ((value - _INT64_MIN) % (1 << 64)) + _INT64_MIN


def _sqrt_term(value: int) -> int:
    # Converting the NaN square root of a negative number yields the minimum int64.
    if value < 0:
        return _INT64_MIN
    return int(math.sqrt(value))


def _target_cache(cache_info: CacheInfo) -> tuple[int, str]:
    if cache_info.l3_size > 0:
        return cache_info.l3_size, "L3"
    return cache_info.l2_size, "L2"


def cache_array_size(cache_info: CacheInfo) -> int:
    """Number of 8-byte elements filling three quarters of the largest cache."""
    size, _ = _target_cache(cache_info)
    return max(int(size * 0.75 / 8), _MIN_ARRAY)


def _record(stats: PerformanceStats, cpu_id: int, gflops: float) -> None:
    cpu = stats.cpu
    cpu.core_gflops[cpu_id] = (cpu.core_gflops.get(cpu_id, 0.0) + gflops) / 2
    cpu.gflops = (cpu.gflops + gflops) / 2


def run_cache_stress(
    stop: threading.Event,
    errors: queue.Queue[str],
    cpu_id: int,
    stats: PerformanceStats,
    debug: bool,
    load_level: str,
    duration: float,
) -> int:
    """Walk random pages of a cache-sized array; returns the number of operations."""
    start_time = time.perf_counter()
    batch_size = adjust_batch_size(1_000_000, load_level)
    sample_start = time.perf_counter()
    with stats:
        cache_info = stats.cpu.cache_info

    _, level = _target_cache(cache_info)
    array_size = cache_array_size(cache_info)
    if debug:
        size_mb = array_size * 8 / (1024 * 1024)
        log_message(
            f"Stressing {level} Cache on CPU {cpu_id} with array size: {size_mb:.2f} MB",
            debug,
        )

    data = list(range(array_size))
    rng = random.Random(cpu_id)
    page_count = max(array_size // _PAGE_ELEMS, 1)

    total = 0
    for _ in range(_SAMPLE_WALKS):
        first = rng.randrange(page_count) * _PAGE_ELEMS
        for idx in range(first, min(first + _PAGE_ELEMS, array_size)):
            total = _wrap(total + data[idx])
            data[idx] ^= total

    sample_elapsed = time.perf_counter() - sample_start
    if sample_elapsed > 0:
        batch_time = sample_elapsed / _SAMPLE_WALKS
        target_batches = int(duration / batch_time)
        if target_batches > 0:
            batch_size = batch_size * target_batches // 1000
        batch_size = max(batch_size, 100)

    count = 0
    expected = 0
    reported = False
    while time.perf_counter() - start_time < duration:
        if stop.is_set():
            return 0
        for _ in range(batch_size):
            if stop.is_set():
                return 0
            first = rng.randrange(page_count) * _PAGE_ELEMS
            for idx in range(first, min(first + _PAGE_ELEMS, array_size)):
                value = data[idx]
                total = _wrap(total + value)
                for _ in range(10):
                    total ^= value
                    total = _wrap(total + _sqrt_term(total))
                data[idx] = total

        count += batch_size
        if count == batch_size:
            expected = total
        elif not reported and total != expected:
            errors.put(
                f"Cache stress error on CPU {cpu_id}: Expected sum {expected}, got {total}"
            )
            reported = True

    elapsed = time.perf_counter() - start_time
    if elapsed > 0:
        ops_per_second = count / elapsed
        gflops = ops_per_second * 2 / 1e9
        with stats:
            _record(stats, cpu_id, gflops)
            stats.cpu.cache_count += count
        if debug:
            log_message(
                f"CPU {cpu_id} cache perf: {ops_per_second / 1e9:.2f} GOPS "
                f"({gflops:.2f} GFLOPS equiv), operations: {count}",
                debug,
            )
    return count


def run_crypto_stress(
    stop: threading.Event,
    errors: queue.Queue[str],
    cpu_id: int,
    stats: PerformanceStats,
    debug: bool,
    load_level: str,
    duration: float,
) -> int:
    """Hash, sign and encrypt a 1 MiB block repeatedly; returns the number of operations."""
    start_time = time.perf_counter()
    batch_size = adjust_batch_size(10_000, load_level)
    rng = random.Random(cpu_id)
    data = bytearray(rng.randbytes(_CRYPTO_BLOCK))

    try:
        rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    except _CRYPTO_ERRORS as exc:
        errors.put(f"RSA key generation failed on CPU {cpu_id}: {exc}")
        return 0

    aes_key = rng.randbytes(32)
    try:
        gcm = AESGCM(aes_key)
    except _CRYPTO_ERRORS as exc:
        errors.put(f"AES cipher creation failed on CPU {cpu_id}: {exc}")
        return 0
    nonce = rng.randbytes(12)

    try:
        ecdsa_key = ec.generate_private_key(ec.SECP256R1())
    except _CRYPTO_ERRORS as exc:
        errors.put(f"ECDSA key generation failed on CPU {cpu_id}: {exc}")
        return 0

    prehashed = Prehashed(hashes.SHA256())
    count = 0
    expected_hash = b""
    reported = False
    while time.perf_counter() - start_time < duration:
        if stop.is_set():
            return 0
        digest = bytes(32)
        for _ in range(batch_size):
            if stop.is_set():
                return 0
            digest = hashlib.sha256(data).digest()
            try:
                rsa_key.sign(hashlib.sha256(data).digest(), padding.PKCS1v15(), prehashed)
            except _CRYPTO_ERRORS as exc:
                errors.put(f"RSA sign failed on CPU {cpu_id}: {exc}")
                reported = True
                break

            ciphertext = gcm.encrypt(nonce, bytes(data[:1024]), None)
            if not ciphertext:
                errors.put(f"AES encryption failed on CPU {cpu_id}")
                reported = True
                break

            try:
                ecdsa_key.sign(hashlib.sha256(data).digest(), ec.ECDSA(prehashed))
            except _CRYPTO_ERRORS as exc:
                errors.put(f"ECDSA sign failed on CPU {cpu_id}: {exc}")
                reported = True
                break

            data[0] = digest[0]

        count += batch_size
        if count == batch_size:
            expected_hash = digest
        elif not reported and digest != expected_hash:
            errors.put(f"Crypto stress error on CPU {cpu_id}: SHA-256 hash mismatch")
            reported = True

    elapsed = time.perf_counter() - start_time
    if elapsed > 0:
        ops_per_second = count / elapsed
        gflops = ops_per_second * 5000 / 1e9
        with stats:
            _record(stats, cpu_id, gflops)
            stats.cpu.crypto_count += count
        if debug:
            log_message(
                f"CPU {cpu_id} crypto perf: {ops_per_second / 1e9:.2f} GOPS "
                f"({gflops:.2f} GFLOPS equiv), operations: {count}",
                debug,
            )
    return count