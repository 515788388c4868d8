########################################################################
# File name: mechanism.py
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
:mod:`~xmppsasl.mechanism` -- The mechanism contract
####################################################

Every SASL mechanism supported by :mod:`xmppsasl` is a subclass of
:class:`Mechanism`. A mechanism instance holds the state of exactly one
negotiation attempt; it is driven by the caller with :meth:`Mechanism.start`
and :meth:`Mechanism.step` and never performs any I/O itself::

    mechanism = factory.create("SCRAM-SHA-1",
                               username="user", password="pencil")
    initial = mechanism.start()
    # send initial, receive challenge
    while not mechanism.is_completed():
        response = mechanism.step(challenge)
        # send response, receive next challenge

The instance moves through the states of :class:`MechanismState`. States only
ever move forward; :attr:`~MechanismState.COMPLETED` and
:attr:`~MechanismState.FAILED` are terminal for :meth:`~Mechanism.step`.

.. autoclass:: MechanismState

.. autoclass:: Mechanism

Implementing a mechanism
========================

Subclasses implement :meth:`Mechanism._start` and :meth:`Mechanism._step` and
may override :meth:`Mechanism._verify_final`. They signal success with
:meth:`Mechanism._complete` and raise subclasses of
:class:`~.errors.NegotiationError` (built with :meth:`Mechanism._error`) to
signal failure; the base class takes care of the state transitions.
"""
import abc
import functools
import logging
import typing

from enum import Enum

from . import errors, statemachine


logger = logging.getLogger(__name__)


@functools.total_ordering
class MechanismState(Enum):
    """
    The states of a :class:`Mechanism`.

    .. attribute:: INITIAL

       The mechanism has been created, but :meth:`Mechanism.start` has not
       been called yet.

    .. attribute:: IN_PROGRESS

       The mechanism is waiting for a challenge from the server.

    .. attribute:: COMPLETED

       The mechanism has sent everything it needs to send and verified
       whatever the server had to prove so far.

    .. attribute:: FAILED

       The negotiation failed; :attr:`Mechanism.failure` holds the reason.
    """

    def __lt__(self, other):
        return self.value < other.value

    INITIAL = 0
    IN_PROGRESS = 1
    COMPLETED = 2
    FAILED = 3


class Mechanism(metaclass=abc.ABCMeta):
    """
    Base class for a client-side SASL mechanism.

    :param username: The authentication identity.
    :type username: :class:`str`
    :param password: The password of the authentication identity.
    :type password: :class:`str`
    :param authzid: The authorization identity, if it differs from the
        authentication identity.
    :type authzid: :class:`str` or :data:`None`

    Further keyword arguments are stored in :attr:`properties` and are
    interpreted by the specific mechanism.

    The credentials may also be assigned to the attributes of the same name
    after construction, as long as :meth:`start` has not been called.

    .. attribute:: NAME

       The canonical mechanism name, as advertised by servers.

    .. autoattribute:: name

    .. autoattribute:: state

    .. attribute:: failure

       The :class:`~.errors.NegotiationError` which moved the instance to
       :attr:`~MechanismState.FAILED`, or :data:`None`.

    .. automethod:: start

    .. automethod:: step

    .. automethod:: verify_final

    .. automethod:: is_completed

    .. automethod:: is_failed
    """

    NAME = None

    def __init__(self, *,
                 username: typing.Optional[str] = None,
                 password: typing.Optional[str] = None,
                 authzid: typing.Optional[str] = None,
                 **properties):
        super().__init__()
        self.username = username
        self.password = password
        self.authzid = authzid
        self.properties = dict(properties)
        self.failure = None
        self._smachine = statemachine.OrderedStateMachine(
            MechanismState.INITIAL,
            final_states=(MechanismState.COMPLETED, MechanismState.FAILED),
        )

    def __repr__(self):
        return "<{}.{} name={!r} state={}>".format(
            type(self).__module__,
            type(self).__qualname__,
            self.name,
            self.state.name,
        )

    @property
    def name(self) -> str:
        """
        The name of the mechanism implemented by this instance.
        """
        return self.NAME

    @property
    def state(self) -> MechanismState:
        """
        The current :class:`MechanismState`.
        """
        return self._smachine.state

    def is_completed(self) -> bool:
        return self._smachine.state == MechanismState.COMPLETED

    def is_failed(self) -> bool:
        return self._smachine.state == MechanismState.FAILED

    def start(self) -> typing.Optional[bytes]:
        """
        Start the negotiation.

        :raises ~.errors.ProtocolStateError: if the mechanism has already been
            started.
        :raises ~.errors.InvalidArgumentError: if required credentials are
            missing.
        :return: The initial response to send along with the mechanism
            selection, or :data:`None` if the mechanism waits for the server to
            send the first challenge.

        Single-round mechanisms move directly to
        :attr:`~MechanismState.COMPLETED`; all others move to
        :attr:`~MechanismState.IN_PROGRESS`.
        """
        if self._smachine.state != MechanismState.INITIAL:
            raise errors.ProtocolStateError(
                "start() has already been called on {}".format(self.name)
            )

        response = self._guarded(self._start)
        if self._smachine.state == MechanismState.INITIAL:
            self._smachine.state = MechanismState.IN_PROGRESS
        return response

    def step(self, server_challenge: bytes) -> bytes:
        """
        Process one challenge from the server and return the response.

        :param server_challenge: The decoded challenge payload.
        :type server_challenge: :class:`bytes`
        :raises ~.errors.ProtocolStateError: if the mechanism is not
            :attr:`~MechanismState.IN_PROGRESS`.
        :raises ~.errors.NegotiationError: if the challenge is invalid or the
            server failed to authenticate itself. The mechanism is
            :attr:`~MechanismState.FAILED` afterwards.
        :return: The response to send back to the server.
        """
        state = self._smachine.state
        if state != MechanismState.IN_PROGRESS:
            raise errors.ProtocolStateError(
                "step() is not allowed in state {} of {}".format(
                    state.name, self.name)
            )

        if not isinstance(server_challenge, (bytes, bytearray)):
            raise errors.InvalidArgumentError(
                "server challenge must be bytes, got {!r}".format(
                    type(server_challenge))
            )

        return self._guarded(self._step, bytes(server_challenge))

    def verify_final(self, server_data: typing.Optional[bytes]) -> None:
        """
        Verify additional data sent by the server after the mechanism has
        completed, for example along with the SASL success message.

        :raises ~.errors.ProtocolStateError: if the mechanism is not
            :attr:`~MechanismState.COMPLETED`.
        :raises ~.errors.NegotiationError: if the data does not verify. This
            moves the mechanism to :attr:`~MechanismState.FAILED`.

        This is the only way a :attr:`~MechanismState.COMPLETED` mechanism can
        change its state.
        """
        state = self._smachine.state
        if state != MechanismState.COMPLETED:
            raise errors.ProtocolStateError(
                "verify_final() is not allowed in state {} of {}".format(
                    state.name, self.name)
            )

        self._guarded(self._verify_final, bytes(server_data or b""))

    def _guarded(self, fn, *args):
        try:
            return fn(*args)
        except errors.NegotiationError as exc:
            self.failure = exc
            self._smachine.escalate(MechanismState.FAILED)
            logger.debug("%s failed: %s", self.name, exc)
            raise

    def _complete(self):
        self._smachine.state = MechanismState.COMPLETED

    def _error(self, cls, text, **kwargs):
        """
        Create an instance of the :class:`~.errors.NegotiationError` subclass
        `cls` which carries the name of this mechanism.
        """
        return cls(text, mechanism=self.name, **kwargs)

    def _require_credentials(self, *names):
        missing = [
            name for name in names
            if getattr(self, name) is None
        ]
        if missing:
            raise errors.InvalidArgumentError(
                "{} requires {}".format(self.name, ", ".join(missing))
            )

    @abc.abstractmethod
    def _start(self) -> typing.Optional[bytes]:
        """
        Return the initial response or :data:`None`.
        """

    @abc.abstractmethod
    def _step(self, server_challenge: bytes) -> bytes:
        """
        Process a challenge and return the response.
        """

    def _verify_final(self, server_data: bytes) -> None:
        if server_data:
            raise self._error(
                errors.MalformedChallengeError,
                "unexpected additional data from server",
            )
