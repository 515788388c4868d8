########################################################################
# File name: errors.py
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
:mod:`~xmppsasl.errors` --- Exception classes
#############################################

All exceptions raised by :mod:`xmppsasl` derive from
:class:`SASLMechanismError`.

Construction-time errors
========================

These are raised by :class:`~.registry.MechanismRegistry` and
:class:`~.factory.MechanismFactory`. They are recoverable: the caller may try
a different mechanism name.

.. autoclass:: SASLMechanismError

.. autoclass:: InvalidArgumentError

.. autoclass:: UnknownMechanismError

.. autoclass:: DuplicateMechanismError

.. autoclass:: MechanismConstructionError

Contract violations
===================

.. autoclass:: ProtocolStateError

Negotiation errors
==================

A negotiation error is terminal for the mechanism instance which raised it;
the instance is in :attr:`~.MechanismState.FAILED` afterwards.

.. autoclass:: NegotiationError

.. autoclass:: MalformedChallengeError

.. autoclass:: NonceMismatchError

.. autoclass:: ServerVerificationError

.. autoclass:: WeakIterationCountError

Stream negotiation exceptions
=============================

.. autoclass:: SASLUnavailable
"""


class SASLMechanismError(Exception):
    """
    Base class for all errors raised by :mod:`xmppsasl`.
    """


class InvalidArgumentError(SASLMechanismError, ValueError):
    """
    The caller passed an invalid argument, such as an empty mechanism name, a
    constructor which cannot produce a :class:`~.mechanism.Mechanism` or
    missing credentials.
    """


class UnknownMechanismError(SASLMechanismError, LookupError):
    """
    No mechanism is known under the given `name`.

    .. attribute:: name

       The name which failed to resolve.
    """

    def __init__(self, name):
        super().__init__(
            "no SASL mechanism registered as {!r}".format(name)
        )
        self.name = name


class DuplicateMechanismError(SASLMechanismError, ValueError):
    """
    A mechanism with the same name (compared case-insensitively) has already
    been registered.

    .. attribute:: name

       The name which was attempted to be registered.
    """

    def __init__(self, name):
        super().__init__(
            "a SASL mechanism is already registered as {!r}".format(name)
        )
        self.name = name


class MechanismConstructionError(SASLMechanismError):
    """
    Constructing the mechanism registered as `name` failed.

    This covers both a constructor which raised and a constructor which
    returned something which is not a :class:`~.mechanism.Mechanism`. The
    original exception, if any, is available as :attr:`__cause__`.

    .. attribute:: name

       The name of the mechanism which could not be constructed.
    """

    def __init__(self, name, text=None):
        msg = "failed to construct SASL mechanism {!r}".format(name)
        if text:
            msg += " ({})".format(text)
        super().__init__(msg)
        self.name = name
        self.text = text


class ProtocolStateError(SASLMechanismError, RuntimeError):
    """
    An operation was invoked on a mechanism in a state which does not permit
    it, for example :meth:`~.mechanism.Mechanism.step` on an instance which
    has already completed or failed.
    """


class NegotiationError(SASLMechanismError):
    """
    Base class for failures of a SASL negotiation.

    .. attribute:: mechanism

       The name of the mechanism which failed, or :data:`None`.

    .. attribute:: text

       Human-readable description of the failure.
    """

    kind = "SASL negotiation failure"

    def __init__(self, text, *, mechanism=None):
        msg = "{}: {}".format(self.kind, text)
        if mechanism:
            msg = "{} ({})".format(msg, mechanism)
        super().__init__(msg)
        self.text = text
        self.mechanism = mechanism


class MalformedChallengeError(NegotiationError):
    """
    A message from the server could not be parsed or lacks a required
    attribute.
    """

    kind = "malformed server message"


class NonceMismatchError(NegotiationError):
    """
    The nonce returned by the server does not extend the nonce sent by the
    client.
    """

    kind = "nonce mismatch"


class ServerVerificationError(NegotiationError):
    """
    The server failed to prove knowledge of the credentials, or reported an
    error in its final message.

    .. warning::

       This may indicate an active attack. Authentication must not be retried
       silently after this error.
    """

    kind = "server verification failed"


class WeakIterationCountError(NegotiationError):
    """
    The iteration count requested by the server is below the configured
    minimum.

    .. attribute:: iteration_count

       The iteration count the server asked for.
    """

    kind = "iteration count too low"

    def __init__(self, text, *, iteration_count=None, **kwargs):
        super().__init__(text, **kwargs)
        self.iteration_count = iteration_count


class SASLUnavailable(SASLMechanismError, ConnectionError):
    """
    The peer does not offer SASL or no common mechanism could be agreed on.
    """

    def __init__(self, text=None):
        msg = "SASL unavailable"
        if text:
            msg += " ('{}')".format(text)
        super().__init__(msg)
        self.text = text
