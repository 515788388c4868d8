########################################################################
# File name: plain.py
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
:mod:`~xmppsasl.plain` -- The ``PLAIN`` mechanism
#################################################

.. autoclass:: PLAIN
"""
import logging

from . import errors, mechanism


logger = logging.getLogger(__name__)


class PLAIN(mechanism.Mechanism):
    """
    The password-based ``PLAIN`` SASL mechanism (see :rfc:`4616`).

    .. warning::

       This is generally unsafe over unencrypted connections and should not be
       used there. :class:`~.security_layer.PasswordSASLProvider` only offers
       it over secure transports by default.

    The whole exchange consists of the initial response; the mechanism is
    :attr:`~.MechanismState.COMPLETED` after :meth:`start`.
    """

    NAME = "PLAIN"

    def _start(self):
        self._require_credentials("username", "password")
        logger.info("attempting PLAIN mechanism")

        authzid = self.authzid
        if authzid == self.username:
            authzid = None

        parts = [
            (authzid or "").encode("utf-8"),
            self.username.encode("utf-8"),
            self.password.encode("utf-8"),
        ]
        if any(b"\0" in part for part in parts):
            raise errors.InvalidArgumentError(
                "NUL byte in username or password is disallowed"
            )

        self._complete()
        return b"\0".join(parts)

    def _step(self, server_challenge):
        # unreachable: the mechanism completes in _start
        raise errors.ProtocolStateError("PLAIN does not take challenges")
