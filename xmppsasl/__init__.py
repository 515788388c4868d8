########################################################################
# File name: __init__.py
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
Version information
###################

There are two ways to obtain the imported version of the :mod:`xmppsasl`
package:

.. autodata:: __version__

.. data:: version

   Alias of :data:`__version__`.

.. autodata:: version_info

Overview
########

:mod:`xmppsasl` implements the client side of SASL mechanism negotiation as
used inside XMPP sessions. Mechanisms are created by name through a
:class:`MechanismFactory`, which resolves names through a
:class:`MechanismRegistry`; both live as long as the application wants them
to. Each mechanism instance is driven round by round with
:meth:`Mechanism.start` and :meth:`Mechanism.step`.

.. autosummary::
    :nosignatures:

    xmppsasl.PLAIN
    xmppsasl.DigestMD5
    xmppsasl.SCRAM

Shorthands
##########

.. function:: make_sasl_provider

   Alias of :func:`xmppsasl.security_layer.make`.

"""
from ._version import version_info, __version__, version  # NOQA: F401

#: The imported :mod:`xmppsasl` version as a tuple.
#:
#: The components of the tuple are, in order: `major version`, `minor version`,
#: `patch level`, and `pre-release identifier`.
version_info = version_info

#: The imported :mod:`xmppsasl` version as a string.
#:
#: The version number is dot-separated; in pre-release or development versions,
#: the version number is followed by a hypen-separated pre-release identifier.
__version__ = __version__

from .errors import (  # NOQA: F401
    SASLMechanismError,
    InvalidArgumentError,
    UnknownMechanismError,
    DuplicateMechanismError,
    MechanismConstructionError,
    ProtocolStateError,
    NegotiationError,
    MalformedChallengeError,
    NonceMismatchError,
    ServerVerificationError,
    WeakIterationCountError,
    SASLUnavailable,
)
from .mechanism import Mechanism, MechanismState  # NOQA: F401
from .plain import PLAIN  # NOQA: F401
from .digest_md5 import DigestMD5  # NOQA: F401
from .scram import SCRAM  # NOQA: F401
from .registry import MechanismRegistry, MechanismDescriptor  # NOQA: F401
from .factory import MechanismFactory  # NOQA: F401
from .sasl import MechanismDriver  # NOQA: F401
from .security_layer import (  # NOQA: F401
    make as make_sasl_provider,
    PasswordSASLProvider,
    SASLPolicy,
)
