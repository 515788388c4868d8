########################################################################
# File name: sasl.py
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
:mod:`~xmppsasl.sasl` -- Driving mechanisms with :mod:`aiosasl`
###############################################################

The mechanisms of :mod:`xmppsasl` only transform bytes. This module connects
them to :mod:`aiosasl`, so that a stream implementation which provides an
:class:`aiosasl.SASLInterface` (sending ``<auth/>``, ``<response/>`` and
``<abort/>`` and waiting for the reply) can run a negotiation::

    driver = MechanismDriver(factory, ["SCRAM-SHA-1", "PLAIN"],
                             username="user", password="pencil")
    token = driver.any_supported(server_mechanisms)
    if token is not None:
        sm = aiosasl.SASLStateMachine(interface)
        await driver.authenticate(sm, token)

.. autoclass:: MechanismDriver
"""
import logging

import aiosasl

from . import registry


logger = logging.getLogger(__name__)


class MechanismDriver(aiosasl.SASLMechanism):
    """
    Run mechanisms created by a :class:`~.factory.MechanismFactory` over an
    :class:`aiosasl.SASLStateMachine`.

    :param factory: The factory to create mechanism instances with.
    :type factory: :class:`~.factory.MechanismFactory`
    :param mechanisms: Mechanism names in order of preference.
    :type mechanisms: iterable of :class:`str`

    The keyword arguments are passed to
    :meth:`~.factory.MechanismFactory.create` for each negotiation.

    Like all :class:`aiosasl.SASLMechanism` implementations, the driver does
    not keep any per-negotiation state; every call to :meth:`prepare`
    creates a fresh mechanism instance.

    .. automethod:: any_supported

    .. automethod:: prepare

    .. automethod:: authenticate
    """

    def __init__(self, factory, mechanisms, **credentials):
        super().__init__()
        self._factory = factory
        self._preference = list(mechanisms)
        self._credentials = credentials

    def any_supported(self, mechanisms):
        """
        Return the most preferred mechanism out of `mechanisms` (as offered by
        the server) which the factory can create.

        The name is returned in the spelling used by the server, or
        :data:`None` if there is no common mechanism.
        """
        offered = {}
        for name in mechanisms:
            offered.setdefault(registry.normalize_name(name), name)

        for name in self._preference:
            token = offered.get(registry.normalize_name(name))
            if token is not None and self._factory.is_supported(token):
                return token

        return None

    async def _abort(self, sm):
        try:
            await sm.abort()
        except aiosasl.SASLFailure as exc:
            logger.debug("peer answered abort with %s", exc)
        except RuntimeError as exc:
            # the state machine refuses to abort once the server signalled
            # success
            logger.debug("could not abort negotiation: %s", exc)

    def prepare(self, token):
        """
        Create the mechanism `token` and compute its initial response.

        Nothing is sent to the server. Errors raised here (for example
        :class:`~.errors.InvalidArgumentError` for unusable credentials) leave
        the stream untouched.

        :return: A tuple of the fresh :class:`~.mechanism.Mechanism` and the
            initial response to pass to :meth:`authenticate`.
        """
        mechanism = self._factory.create(token, **self._credentials)
        return mechanism, mechanism.start()

    async def authenticate(self, sm, token, *, prepared=None):
        """
        Run the mechanism `token` (a value returned by :meth:`any_supported`)
        using the state machine `sm`.

        :param prepared: The result of :meth:`prepare`. If omitted,
            :meth:`prepare` is called first.
        :raises aiosasl.SASLFailure: if the server reports a failure or
            signals success before the mechanism has completed.
        :raises ~.errors.SASLMechanismError: if the mechanism rejects a
            server message or cannot compute a response. Once ``<auth/>`` has
            been sent, the negotiation is aborted before the error is
            re-raised.
        :return: The completed :class:`~.mechanism.Mechanism` instance.
        """
        if prepared is None:
            prepared = self.prepare(token)
        mechanism, initial_response = prepared
        logger.debug("negotiating %s", mechanism)

        state, payload = await sm.initiate(
            mechanism=token,
            payload=initial_response,
        )

        while state == aiosasl.SASLState.CHALLENGE:
            try:
                if mechanism.is_completed():
                    mechanism.verify_final(payload)
                    response = b""
                else:
                    response = mechanism.step(payload or b"")
            except Exception:
                await self._abort(sm)
                raise

            state, payload = await sm.response(response)

        if not mechanism.is_completed():
            raise aiosasl.SASLFailure(
                None,
                text="protocol violation: server signalled success before "
                "{} completed".format(mechanism.name)
            )

        if payload:
            # additional data with success, only possible on initiate
            mechanism.verify_final(payload)

        logger.debug("%s completed", mechanism.name)
        return mechanism
