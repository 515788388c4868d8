########################################################################
# File name: digest_md5.py
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
:mod:`~xmppsasl.digest_md5` -- The ``DIGEST-MD5`` mechanism
###########################################################

Implementation of the client side of ``DIGEST-MD5`` (:rfc:`2831`), restricted
to the ``auth`` quality of protection.

.. autoclass:: DigestMD5

Directive parsing
=================

.. autofunction:: parse_directives

.. autofunction:: write_directives

Hashing
=======

.. autofunction:: user_hash

.. autofunction:: response_value
"""
import binascii
import hashlib
import logging
import re

from . import errors, hashes, mechanism


logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(rb"[A-Za-z0-9_\-]+")
_WHITESPACE = b" \t\r\n"

#: Directives whose value is written as quoted-string.
QUOTED_DIRECTIVES = frozenset([
    "username",
    "realm",
    "nonce",
    "cnonce",
    "digest-uri",
    "authzid",
])


def parse_directives(data):
    """
    Parse a ``DIGEST-MD5`` message into a list of ``(key, value)`` pairs.

    Keys are returned as lower-case :class:`str`, values as :class:`bytes`
    with quoting removed. Empty list elements are skipped, as required by
    the ``#rule`` of :rfc:`2831`.

    :raises ValueError: if the message is not well-formed.
    """
    result = []
    pos = 0
    n = len(data)
    while True:
        while pos < n and data[pos:pos+1] in _WHITESPACE + b",":
            pos += 1
        if pos >= n:
            break

        eq = data.find(b"=", pos)
        if eq < 0:
            raise ValueError("directive without value at offset {}".format(
                pos))
        key = data[pos:eq].strip()
        if not _TOKEN_RE.fullmatch(key):
            raise ValueError("invalid directive name {!r}".format(key))

        pos = eq + 1
        while pos < n and data[pos:pos+1] in _WHITESPACE:
            pos += 1

        if data[pos:pos+1] == b'"':
            pos += 1
            value = bytearray()
            while True:
                if pos >= n:
                    raise ValueError("unterminated quoted-string")
                c = data[pos:pos+1]
                if c == b'"':
                    pos += 1
                    break
                if c == b"\\":
                    pos += 1
                    if pos >= n:
                        raise ValueError("unterminated quoted-pair")
                    c = data[pos:pos+1]
                value += c
                pos += 1
            value = bytes(value)
        else:
            end = data.find(b",", pos)
            if end < 0:
                end = n
            value = data[pos:end].strip()
            pos = end

        while pos < n and data[pos:pos+1] in _WHITESPACE:
            pos += 1
        if pos < n and data[pos:pos+1] != b",":
            raise ValueError("expected ',' at offset {}".format(pos))

        result.append((key.decode("ascii").lower(), value))

    return result


def quote(value):
    return b'"' + value.replace(b"\\", b"\\\\").replace(b'"', b'\\"') + b'"'


def write_directives(directives):
    """
    Serialise an iterable of ``(key, value)`` pairs with :class:`bytes`
    values. Values of the keys in :data:`QUOTED_DIRECTIVES` are quoted.
    """
    return b",".join(
        key.encode("ascii") + b"=" + (
            quote(value) if key in QUOTED_DIRECTIVES else value
        )
        for key, value in directives
    )


def _md5(data):
    return hashlib.md5(data).digest()


def _hex(data):
    return binascii.b2a_hex(data)


def user_hash(username, realm, password):
    """
    ``H({ username-value, ":", realm-value, ":", passwd })``, the first part
    of A1 in :rfc:`2831`. All arguments are :class:`bytes`.
    """
    return _md5(b":".join([username, realm, password]))


def response_value(uh, nonce, cnonce, nc, qop, a2, authzid=None):
    """
    Compute the ``response-value`` of :rfc:`2831`, section 2.1.2.1.

    :param uh: The result of :func:`user_hash`.
    :param a2: The A2 value; ``AUTHENTICATE:<digest-uri>`` for the client
        response and ``:<digest-uri>`` for the ``rspauth`` of the server.
    :return: The lower-case hex digest as :class:`bytes`.
    """
    a1 = [uh, nonce, cnonce]
    if authzid:
        a1.append(authzid)
    ha1 = _hex(_md5(b":".join(a1)))
    ha2 = _hex(_md5(a2))
    return _hex(_md5(b":".join([ha1, nonce, nc, cnonce, qop, ha2])))


def _downgrade(value):
    # RFC 2831: with charset=utf-8, user name, realm and password are hashed
    # as ISO 8859-1 if all of their characters are representable there.
    try:
        return value.encode("iso-8859-1")
    except UnicodeEncodeError:
        return value.encode("utf-8")


class DigestMD5(mechanism.Mechanism):
    """
    The ``DIGEST-MD5`` SASL mechanism (:rfc:`2831`).

    Besides the credentials, the following properties are used:

    ``host``
        The host name of the service. Defaults to the realm offered by the
        server.

    ``service_type``
        The registered service name, ``xmpp`` by default.

    ``service_name``
        An optional service name, appended to the digest-uri.

    :meth:`start` returns :data:`None`; the server sends the first challenge.
    After the response has been computed, the mechanism is
    :attr:`~.MechanismState.COMPLETED`. The ``rspauth`` the server sends
    afterwards is checked by :meth:`verify_final`.

    .. note::

       :rfc:`6331` moved ``DIGEST-MD5`` to historic. It is supported for
       interoperability with old servers; prefer ``SCRAM-SHA-1``.
    """

    NAME = "DIGEST-MD5"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._nonce_count = 0
        self._expected_rspauth = None

    def _start(self):
        self._require_credentials("username", "password")
        logger.info("attempting DIGEST-MD5 mechanism")
        return None

    def _parse_challenge(self, data):
        try:
            directives = parse_directives(data)
        except ValueError as exc:
            raise self._error(errors.MalformedChallengeError,
                              str(exc)) from exc

        challenge = {}
        realms = []
        for key, value in directives:
            if key == "realm":
                realms.append(value)
                continue
            if key in challenge:
                raise self._error(
                    errors.MalformedChallengeError,
                    "duplicate directive {!r}".format(key),
                )
            challenge[key] = value

        return challenge, realms

    def _step(self, server_challenge):
        self._require_credentials("username", "password")

        challenge, realms = self._parse_challenge(server_challenge)

        nonce = challenge.get("nonce")
        if not nonce:
            raise self._error(errors.MalformedChallengeError,
                              "missing nonce directive")

        algorithm = challenge.get("algorithm")
        if algorithm is None:
            raise self._error(errors.MalformedChallengeError,
                              "missing algorithm directive")
        if algorithm.lower() != b"md5-sess":
            raise self._error(
                errors.MalformedChallengeError,
                "unsupported algorithm {!r}".format(algorithm),
            )

        qop_options = [
            option.strip().lower()
            for option in challenge.get("qop", b"auth").split(b",")
        ]
        if b"auth" not in qop_options:
            raise self._error(
                errors.MalformedChallengeError,
                "server does not offer qop=auth",
            )

        charset = challenge.get("charset")
        if charset is not None and charset.lower() != b"utf-8":
            raise self._error(
                errors.MalformedChallengeError,
                "invalid charset {!r}".format(charset),
            )
        encoding = "utf-8" if charset is not None else "iso-8859-1"

        try:
            realm = realms[0].decode(encoding) if realms else None
        except UnicodeDecodeError as exc:
            raise self._error(errors.MalformedChallengeError,
                              "realm is not {}".format(encoding)) from exc

        host = self.properties.get("host") or realm
        if not host:
            raise errors.InvalidArgumentError(
                "DIGEST-MD5 requires a host if the server offers no realm"
            )
        if realm is None:
            realm = host

        digest_uri = "{}/{}".format(
            self.properties.get("service_type", "xmpp"),
            host,
        )
        service_name = self.properties.get("service_name")
        if service_name:
            digest_uri += "/{}".format(service_name)

        try:
            encoded = {
                "username": self.username.encode(encoding),
                "realm": realm.encode(encoding),
                "digest-uri": digest_uri.encode(encoding),
                "authzid": (self.authzid or "").encode("utf-8"),
            }
            if charset is not None:
                uh = user_hash(_downgrade(self.username),
                               _downgrade(realm),
                               _downgrade(self.password))
            else:
                uh = user_hash(encoded["username"],
                               encoded["realm"],
                               self.password.encode(encoding))
        except UnicodeEncodeError as exc:
            raise errors.InvalidArgumentError(
                "credentials cannot be encoded as {}".format(encoding)
            ) from exc

        self._nonce_count += 1
        nc = "{:08x}".format(self._nonce_count).encode("ascii")
        cnonce = hashes.make_nonce().encode("ascii")
        qop = b"auth"

        response = response_value(
            uh, nonce, cnonce, nc, qop,
            b"AUTHENTICATE:" + encoded["digest-uri"],
            authzid=encoded["authzid"],
        )
        self._expected_rspauth = response_value(
            uh, nonce, cnonce, nc, qop,
            b":" + encoded["digest-uri"],
            authzid=encoded["authzid"],
        )

        directives = [
            ("username", encoded["username"]),
            ("realm", encoded["realm"]),
            ("nonce", nonce),
            ("cnonce", cnonce),
            ("nc", nc),
            ("qop", qop),
            ("digest-uri", encoded["digest-uri"]),
            ("response", response),
        ]
        if charset is not None:
            directives.append(("charset", b"utf-8"))
        if encoded["authzid"]:
            directives.append(("authzid", encoded["authzid"]))

        self._complete()
        return write_directives(directives)

    def _verify_final(self, server_data):
        if not server_data:
            logger.debug("no rspauth received, relying on server success")
            return

        challenge, _ = self._parse_challenge(server_data)
        rspauth = challenge.get("rspauth")
        if rspauth is None:
            raise self._error(errors.MalformedChallengeError,
                              "missing rspauth directive")

        if not hashes.constant_time_equal(rspauth.lower(),
                                          self._expected_rspauth):
            logger.warning("DIGEST-MD5 rspauth mismatch")
            raise self._error(errors.ServerVerificationError,
                              "rspauth does not match")
