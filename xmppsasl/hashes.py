########################################################################
# File name: hashes.py
# This file is part of: xmppsasl
#
# LICENSE
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# This program is distributed in the hope that it will be useful, but
# WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public
# License along with this program.  If not, see
# <http://www.gnu.org/licenses/>.
#
########################################################################
"""
:mod:`~xmppsasl.hashes` --- Hash and key derivation primitives
##############################################################

This module collects the cryptographic building blocks used by the hashing
SASL mechanisms. Hash functions are referred to by the names used in SASL
mechanism names (``SHA-1`` in ``SCRAM-SHA-1``, see the IANA "Hash Function
Textual Names" registry).

Utilities for Working with Hash Algorithm Identifiers
=====================================================

.. autofunction:: hash_from_algo

.. autofunction:: is_algo_supported

Key derivation and keyed hashing
================================

.. autofunction:: pbkdf2

.. autofunction:: hmac_digest

.. autofunction:: xor_bytes

.. autofunction:: constant_time_equal

Nonces
======

.. autofunction:: make_nonce
"""
import base64
import hashlib
import hmac
import random


_system_random = random.SystemRandom()


_HASH_ALGO_MAPPING = [
    ("MD2", (False, "md2")),
    ("MD5", (False, "md5")),
    ("SHA-1", (True, "sha1")),
    ("SHA-224", (True, "sha224")),
    ("SHA-256", (True, "sha256")),
    ("SHA-384", (True, "sha384")),
    ("SHA-512", (True, "sha512")),
]


_HASH_ALGO_MAP = dict(_HASH_ALGO_MAPPING)


def is_algo_supported(algo):
    """
    Return true if the hash function `algo` may be used in salted challenge
    response mechanisms and is provided by :mod:`hashlib`.
    """
    try:
        enabled, fun_name = _HASH_ALGO_MAP[algo.upper()]
    except KeyError:
        return False

    return enabled and fun_name in hashlib.algorithms_available


def hash_from_algo(algo):
    """
    Return the :mod:`hashlib` name of the hash function `algo`.

    :param algo: The textual name of the hash function, e.g. ``SHA-1``.
    :type algo: :class:`str`
    :raises NotImplementedError: if the hash algorithm is not supported by
        :mod:`hashlib`.
    :raises ValueError: if the hash algorithm must not be used for salted
        challenge response mechanisms.
    :return: A name accepted by :func:`hashlib.new`.
    """

    try:
        enabled, fun_name = _HASH_ALGO_MAP[algo.upper()]
    except KeyError:
        raise NotImplementedError(
            "hash algorithm {!r} unknown".format(algo)
        ) from None

    if not enabled:
        raise ValueError(
            "use of {} in SCRAM is forbidden".format(algo)
        )

    if fun_name not in hashlib.algorithms_available:
        raise NotImplementedError(
            "{} not supported by hashlib".format(algo)
        )

    return fun_name


def pbkdf2(hashfun_name, password, salt, iterations, dklen=None):
    """
    Derive a key from `password` by iterated keyed hashing (the ``Hi()``
    function of :rfc:`5802`, which is PBKDF2 with HMAC).

    :param hashfun_name: A hash function name as accepted by
        :func:`hashlib.new`.
    :param password: The (prepared) password.
    :type password: :class:`bytes`
    :param salt: The salt supplied by the server.
    :type salt: :class:`bytes`
    :param iterations: The iteration count supplied by the server.
    :type iterations: positive :class:`int`
    :param dklen: Length of the derived key; defaults to the digest size.
    :return: The derived key.
    :rtype: :class:`bytes`
    """
    if iterations < 1:
        raise ValueError("iteration count must be positive")
    return hashlib.pbkdf2_hmac(hashfun_name, password, salt, iterations,
                               dklen)


def hmac_digest(hashfun_name, key, msg):
    return hmac.new(key, msg, hashfun_name).digest()


def xor_bytes(a, b):
    """
    XOR two :class:`bytes` objects of equal length.
    """
    if len(a) != len(b):
        raise ValueError("operands must have equal length")
    return bytes(x ^ y for x, y in zip(a, b))


def constant_time_equal(a, b):
    return hmac.compare_digest(a, b)


def make_nonce(nbytes=18):
    """
    Generate a printable nonce from `nbytes` random bytes.

    The nonce is the base64 encoding of the random bytes and therefore
    contains neither ``,`` nor ``"``.

    :rtype: :class:`str`
    """
    value = _system_random.getrandbits(nbytes * 8)
    return base64.b64encode(
        value.to_bytes(nbytes, "little")
    ).decode("ascii")
