########################################################################
# File name: security_layer.py
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
:mod:`~xmppsasl.security_layer` --- Password-based SASL negotiation
###################################################################

This module selects a mechanism out of the list the server advertises and
runs it, re-querying the password if the server rejects the credentials.

.. autofunction:: make

.. autoclass:: SASLPolicy

.. autoclass:: SASLProvider

.. autoclass:: PasswordSASLProvider
"""
import abc
import collections
import logging

import aiosasl

from . import errors, factory as factory_mod, registry, sasl, scram


logger = logging.getLogger(__name__)


DEFAULT_MECHANISMS = ("SCRAM-SHA-1", "DIGEST-MD5", "PLAIN")


class SASLPolicy(collections.namedtuple(
        "SASLPolicy",
        [
            "mechanisms",
            "minimum_iteration_count",
            "max_auth_attempts",
            "plain_requires_tls",
        ])):
    """
    The policy used by :class:`PasswordSASLProvider`. The arguments are used
    to initialise the attributes of the same name.

    .. seealso::

       :func:`make`
          A function which creates a configured provider.

    .. attribute:: mechanisms

       Sequence of mechanism names in order of preference. Only mechanisms
       from this sequence are ever attempted.

    .. attribute:: minimum_iteration_count

       The minimum iteration count accepted from the server by ``SCRAM``
       mechanisms, or :data:`None` to accept any.

    .. attribute:: max_auth_attempts

       Maximum number of authentication attempts with a single mechanism.

    .. attribute:: plain_requires_tls

       If true, ``PLAIN`` is only used over secure transports.

       .. note::

           Disabling this sends the password in the clear over unencrypted
           connections.
    """


DEFAULT_POLICY = SASLPolicy(
    mechanisms=DEFAULT_MECHANISMS,
    minimum_iteration_count=scram.SCRAM.DEFAULT_MINIMUM_ITERATION_COUNT,
    max_auth_attempts=3,
    plain_requires_tls=True,
)


class SASLProvider(metaclass=abc.ABCMeta):
    """
    Base class to implement a SASL provider.

    The following methods must be implemented by subclasses:

    .. automethod:: execute

    The following method is intended to be re-used by subclasses:

    .. automethod:: _execute
    """

    AUTHENTICATION_FAILURES = {
        "credentials-expired",
        "account-disabled",
        "invalid-authzid",
        "not-authorized",
        "temporary-auth-failure",
    }

    MECHANISM_REJECTED_FAILURES = {
        "invalid-mechanism",
        "mechanism-too-weak",
        "encryption-required",
    }

    async def _execute(self, intf, mechanism, token, **kwargs):
        """
        Execute a SASL authentication process.

        :param intf: SASL interface to use
        :type intf: :class:`aiosasl.SASLInterface`
        :param mechanism: SASL mechanism to use
        :type mechanism: :class:`aiosasl.SASLMechanism`
        :param token: The opaque token argument for the mechanism
        :type token: not :data:`None`
        :param kwargs: Passed on to
            :meth:`aiosasl.SASLMechanism.authenticate`.
        :raises aiosasl.AuthenticationFailure: if authentication failed due to
                                               bad credentials
        :raises aiosasl.SASLFailure: on other SASL error conditions (such as
                                     protocol violations)
        :return: true if authentication succeeded, false if the mechanism has
                 to be disabled
        :rtype: :class:`bool`

        The more specific exceptions are generated by inspecting the
        :attr:`aiosasl.SASLFailure.opaque_error` on exceptions raised from the
        interface. Other :class:`aiosasl.SASLFailure` exceptions and the
        :class:`~.errors.NegotiationError` exceptions raised by mechanisms are
        re-raised without modification.
        """
        sm = aiosasl.SASLStateMachine(intf)
        try:
            await mechanism.authenticate(sm, token, **kwargs)
            return True
        except aiosasl.SASLFailure as err:
            if err.opaque_error in self.AUTHENTICATION_FAILURES:
                raise aiosasl.AuthenticationFailure(
                    opaque_error=err.opaque_error,
                    text=err.text)
            elif err.opaque_error in self.MECHANISM_REJECTED_FAILURES:
                return False
            raise

    @abc.abstractmethod
    async def execute(self, username, remote_mechanisms, intf, *,
                      transport_secure=False):
        """
        Perform SASL negotiation.

        :param username: The user name to authenticate as.
        :type username: :class:`str`
        :param remote_mechanisms: The mechanism names advertised by the server.
        :type remote_mechanisms: iterable of :class:`str`
        :param intf: The interface to the stream.
        :type intf: :class:`aiosasl.SASLInterface`
        :param transport_secure: Whether the transport is encrypted.
        :type transport_secure: :class:`bool`
        :raise aiosasl.AuthenticationFailure: if authentication failed due to
                                              bad credentials
        :raise aiosasl.SASLFailure: on other SASL-related errors
        :raise ~.errors.NegotiationError: if a mechanism rejected a server
                                          message
        :raise ~.errors.SASLUnavailable: if the server advertises no
                                         mechanisms at all
        :return: true if the negotiation was successful, false if no common
                 mechanisms could be found or all mechanisms failed for reasons
                 unrelated to the credentials themselves.
        :rtype: :class:`bool`
        """


class PasswordSASLProvider(SASLProvider):
    """
    Perform password-based SASL authentication.

    :param password_provider: A coroutine function returning the password to
                              authenticate with.
    :type password_provider: coroutine function
    :param factory: The factory to create mechanisms with.
    :type factory: :class:`~.factory.MechanismFactory`
    :param policy: The negotiation policy.
    :type policy: :class:`SASLPolicy`

    Further keyword arguments are passed to the mechanisms as properties (for
    example ``host`` for ``DIGEST-MD5``).

    `password_provider` must be a coroutine function taking two arguments, the
    user name and an integer number. The second argument is the number of the
    authentication attempt, starting at 0. On each attempt, the number is
    increased, up to :attr:`SASLPolicy.max_auth_attempts`\\ -1. If the
    coroutine returns :data:`None`, the authentication process is aborted. If
    the number of attempts are exceeded, the authentication process is also
    aborted. In both cases, an :class:`aiosasl.AuthenticationFailure` error
    will be raised.

    An :class:`~.errors.InvalidArgumentError` raised while the initial
    response is computed (before anything is sent) counts as a failed attempt
    and the password is queried again. Errors raised by the mechanisms once
    the exchange has started (:class:`~.errors.NegotiationError`, such as
    :class:`~.errors.ServerVerificationError`, or configuration errors such
    as a missing ``host`` for ``DIGEST-MD5``) abort the exchange and are
    never retried.

    .. seealso::

       :class:`SASLProvider`
          for the public interface of this class.
    """

    def __init__(self, password_provider, *,
                 factory=None,
                 policy=DEFAULT_POLICY,
                 **properties):
        super().__init__()
        self._password_provider = password_provider
        self._factory = factory or factory_mod.MechanismFactory()
        self._policy = policy
        self._properties = properties

    @property
    def policy(self):
        return self._policy

    def _candidates(self, transport_secure):
        candidates = list(self._policy.mechanisms)
        if self._policy.plain_requires_tls and not transport_secure:
            candidates = [
                name for name in candidates
                if registry.normalize_name(name) != "PLAIN"
            ]
        return candidates

    async def execute(self, username, remote_mechanisms, intf, *,
                      transport_secure=False):
        remote_mechanisms = list(remote_mechanisms)
        if not remote_mechanisms:
            logger.error("No sasl mechanisms offered by peer")
            raise errors.SASLUnavailable(
                "Remote side does not support SASL")

        cached_password = None

        async def get_password(nattempt):
            nonlocal cached_password
            if cached_password is not None:
                return cached_password

            password = await self._password_provider(username, nattempt)
            if password is None:
                raise aiosasl.AuthenticationFailure(
                    "user intervention",
                    text="authentication aborted by user")
            cached_password = password
            return password

        candidates = self._candidates(transport_secure)
        while candidates:
            # go over all mechanisms available. some errors disable a mechanism
            # (like encryption-required or mechansim-too-weak)
            token = sasl.MechanismDriver(
                self._factory,
                candidates,
            ).any_supported(remote_mechanisms)
            if token is None:
                return False

            last_auth_error = None
            for nattempt in range(self._policy.max_auth_attempts):
                password = await get_password(nattempt)
                driver = sasl.MechanismDriver(
                    self._factory,
                    [token],
                    username=username,
                    password=password,
                    minimum_iteration_count=(
                        self._policy.minimum_iteration_count
                    ),
                    **self._properties)

                try:
                    prepared = driver.prepare(token)
                except errors.InvalidArgumentError as err:
                    # nothing has been sent yet, another password may do
                    logger.debug("password rejected by %s before "
                                 "attempt %d: %s", token, nattempt, err)
                    last_auth_error = err
                    cached_password = None
                    continue

                try:
                    mechanism_worked = await self._execute(
                        intf, driver, token, prepared=prepared)
                except aiosasl.AuthenticationFailure as err:
                    logger.debug("authentication attempt %d with %s "
                                 "failed: %s", nattempt, token, err)
                    last_auth_error = err
                    # allow the user to re-try
                    cached_password = None
                    continue
                else:
                    break
            else:
                raise last_auth_error

            if mechanism_worked:
                return True

            logger.info("mechanism %s rejected by peer", token)
            candidates = [
                name for name in candidates
                if registry.normalize_name(name) !=
                registry.normalize_name(token)
            ]

        return False


def make(password_provider, *,
         mechanisms=DEFAULT_MECHANISMS,
         minimum_iteration_count=DEFAULT_POLICY.minimum_iteration_count,
         max_auth_attempts=DEFAULT_POLICY.max_auth_attempts,
         plain_requires_tls=DEFAULT_POLICY.plain_requires_tls,
         host=None,
         registry=None):
    """
    Construct a :class:`PasswordSASLProvider` with a :class:`SASLPolicy`.

    :param password_provider: Password source, see
        :class:`PasswordSASLProvider`. If it is a :class:`str`, it is used as
        a static password and no re-tries are possible.
    :param mechanisms: Mechanism names in order of preference.
    :param minimum_iteration_count: Minimum ``SCRAM`` iteration count.
    :param max_auth_attempts: Maximum number of attempts per mechanism.
    :param plain_requires_tls: Whether to refuse ``PLAIN`` over insecure
        transports.
    :param host: The host name of the service (used by ``DIGEST-MD5``).
    :param registry: The registry to resolve mechanism names with; a fresh
        :class:`~.registry.MechanismRegistry` is used if omitted.
    :raises ~.errors.InvalidArgumentError: if `mechanisms` is empty or
        `max_auth_attempts` is not positive.
    :raises ~.errors.UnknownMechanismError: if a name in `mechanisms` cannot
        be resolved.
    :rtype: :class:`PasswordSASLProvider`
    """
    mechanisms = tuple(mechanisms)
    if not mechanisms:
        raise errors.InvalidArgumentError("no mechanisms given")

    if max_auth_attempts < 1:
        raise errors.InvalidArgumentError(
            "max_auth_attempts must be positive"
        )

    factory = factory_mod.MechanismFactory(registry)
    for name in mechanisms:
        if not factory.is_supported(name):
            raise errors.UnknownMechanismError(name)

    if isinstance(password_provider, str):
        static_password = password_provider

        async def password_provider(username, nattempt):
            if nattempt == 0:
                return static_password
            return None

    properties = {}
    if host is not None:
        properties["host"] = host

    logger.debug("SASL preference order: %s", ", ".join(mechanisms))

    return PasswordSASLProvider(
        password_provider,
        factory=factory,
        policy=SASLPolicy(
            mechanisms=mechanisms,
            minimum_iteration_count=minimum_iteration_count,
            max_auth_attempts=max_auth_attempts,
            plain_requires_tls=plain_requires_tls,
        ),
        **properties
    )
