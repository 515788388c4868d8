########################################################################
# File name: registry.py
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
:mod:`~xmppsasl.registry` -- Mechanism registry
###############################################

The registry maps mechanism names to constructors. Names are compared
case-insensitively. A registry always contains the built-in mechanisms
(:data:`BUILTIN_MECHANISMS`); additional mechanisms are added with
:meth:`MechanismRegistry.register` and are never removed.

Registries are plain objects: create one per process (or per test) and pass
it to :class:`~.factory.MechanismFactory`.

.. autoclass:: MechanismRegistry

.. autoclass:: MechanismDescriptor

.. data:: BUILTIN_MECHANISMS

   Tuple of :class:`MechanismDescriptor` instances for the mechanisms
   shipped with :mod:`xmppsasl`: ``PLAIN``, ``DIGEST-MD5`` and
   ``SCRAM-SHA-1``.
"""
import collections
import logging
import re
import string
import threading

from . import digest_md5, errors, mechanism, plain, scram


logger = logging.getLogger(__name__)


class MechanismDescriptor(collections.namedtuple(
        "MechanismDescriptor",
        [
            "name",
            "constructor",
        ])):
    """
    A registry entry.

    .. attribute:: name

       The name under which the mechanism was registered, in the spelling
       used at registration.

    .. attribute:: constructor

       A callable which returns a fresh :class:`~.mechanism.Mechanism`. It is
       called with the credentials passed to
       :meth:`~.factory.MechanismFactory.create` as keyword arguments.
    """


BUILTIN_MECHANISMS = (
    MechanismDescriptor("PLAIN", plain.PLAIN),
    MechanismDescriptor("DIGEST-MD5", digest_md5.DigestMD5),
    MechanismDescriptor("SCRAM-SHA-1", scram.SCRAM),
)


_ASCII_UPPER = str.maketrans(string.ascii_lowercase, string.ascii_uppercase)

#: mechanism names as defined in RFC 4422, section 3.1, ignoring case
MECHANISM_NAME_RE = re.compile(r"\A[A-Za-z0-9_-]{1,20}\Z")


def normalize_name(name):
    """
    Return the key under which `name` is stored: ASCII letters are
    upper-cased, all other characters are kept as they are.
    """
    return name.translate(_ASCII_UPPER)


class MechanismRegistry:
    """
    Case-insensitive mapping of mechanism names to constructors.

    Registration takes a lock, so that :meth:`register` may be called while
    other threads resolve names.

    .. automethod:: register

    .. automethod:: lookup

    .. automethod:: get_descriptor

    The registry also supports ``name in registry``, :func:`len` and
    iteration over the registered names (in registration order).
    """

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()
        self._descriptors = collections.OrderedDict(
            (normalize_name(descriptor.name), descriptor)
            for descriptor in BUILTIN_MECHANISMS
        )

    def register(self, name, constructor):
        """
        Register `constructor` under `name`.

        :param name: The mechanism name.
        :type name: :class:`str`
        :param constructor: A :class:`~.mechanism.Mechanism` subclass or any
            other callable returning a fresh mechanism instance, for example a
            :func:`functools.partial` of a subclass.
        :raises ~.errors.InvalidArgumentError: if `name` is not a valid SASL
            mechanism name (up to 20 ASCII letters, digits, ``-`` and
            ``_``), or if `constructor` is not callable or is a class which
            does not derive from :class:`~.mechanism.Mechanism`.
        :raises ~.errors.DuplicateMechanismError: if a mechanism of the same
            name (ignoring case) is already registered. The existing entry is
            left untouched.

        Callables which are not classes cannot be checked up front; if they
        return something which is not a mechanism,
        :meth:`~.factory.MechanismFactory.create` raises
        :class:`~.errors.MechanismConstructionError`.
        """
        if not isinstance(name, str) or not MECHANISM_NAME_RE.match(name):
            raise errors.InvalidArgumentError(
                "invalid mechanism name: {!r}".format(name)
            )

        if constructor is None or not callable(constructor):
            raise errors.InvalidArgumentError(
                "constructor for {!r} must be callable".format(name)
            )

        if (isinstance(constructor, type) and
                not issubclass(constructor, mechanism.Mechanism)):
            raise errors.InvalidArgumentError(
                "{!r} is not a subclass of Mechanism".format(constructor)
            )

        key = normalize_name(name)
        with self._lock:
            if key in self._descriptors:
                raise errors.DuplicateMechanismError(name)
            self._descriptors[key] = MechanismDescriptor(name, constructor)

        logger.debug("registered SASL mechanism %r: %r", name, constructor)

    def get_descriptor(self, name):
        """
        Return the :class:`MechanismDescriptor` for `name` or :data:`None`.
        """
        if not isinstance(name, str):
            return None
        return self._descriptors.get(normalize_name(name))

    def lookup(self, name):
        """
        Return the constructor registered for `name`, or :data:`None` if no
        such mechanism is registered.
        """
        descriptor = self.get_descriptor(name)
        if descriptor is None:
            return None
        return descriptor.constructor

    def __contains__(self, name):
        return self.get_descriptor(name) is not None

    def __iter__(self):
        with self._lock:
            names = [
                descriptor.name
                for descriptor in self._descriptors.values()
            ]
        return iter(names)

    def __len__(self):
        return len(self._descriptors)
