########################################################################
# File name: factory.py
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
:mod:`~xmppsasl.factory` -- Creating mechanism instances
########################################################

.. autoclass:: MechanismFactory
"""
import logging

from . import errors, mechanism, registry as registry_mod


logger = logging.getLogger(__name__)


_BUILTIN_DISPATCH = {
    registry_mod.normalize_name(descriptor.name): descriptor.constructor
    for descriptor in registry_mod.BUILTIN_MECHANISMS
}


class MechanismFactory:
    """
    Create fresh :class:`~.mechanism.Mechanism` instances by name.

    :param registry: The registry to resolve names which are not built in.
        If omitted, a new :class:`~.registry.MechanismRegistry` is created.
    :type registry: :class:`~.registry.MechanismRegistry`

    .. attribute:: registry

       The :class:`~.registry.MechanismRegistry` in use.

    .. automethod:: create

    .. automethod:: is_supported

    .. automethod:: supported
    """

    def __init__(self, registry=None):
        super().__init__()
        if registry is None:
            registry = registry_mod.MechanismRegistry()
        self.registry = registry

    def create(self, name, **credentials):
        """
        Create a new mechanism instance for the mechanism `name`.

        :param name: The mechanism name, compared case-insensitively.
        :type name: :class:`str`
        :param credentials: Keyword arguments for the mechanism constructor,
            see :class:`~.mechanism.Mechanism`.
        :raises ~.errors.InvalidArgumentError: if `name` is empty.
        :raises ~.errors.UnknownMechanismError: if no mechanism is known under
            `name`. Nothing is constructed in that case.
        :raises ~.errors.MechanismConstructionError: if the registered
            constructor fails or does not return a fresh mechanism.
        :return: A mechanism in :attr:`~.MechanismState.INITIAL` state.

        The built-in mechanisms are constructed directly; all other names are
        resolved through :attr:`registry`.
        """
        if not isinstance(name, str) or not name:
            raise errors.InvalidArgumentError(
                "mechanism name must be a non-empty string"
            )

        builtin = _BUILTIN_DISPATCH.get(registry_mod.normalize_name(name))
        if builtin is not None:
            logger.debug("creating built-in SASL mechanism %r", name)
            return builtin(**credentials)

        constructor = self.registry.lookup(name)
        if constructor is None:
            raise errors.UnknownMechanismError(name)

        logger.debug("creating registered SASL mechanism %r", name)
        try:
            instance = constructor(**credentials)
        except Exception as exc:
            raise errors.MechanismConstructionError(name, str(exc)) from exc

        if not isinstance(instance, mechanism.Mechanism):
            raise errors.MechanismConstructionError(
                name,
                "constructor returned {!r}, not a Mechanism".format(
                    type(instance)),
            )

        if instance.state != mechanism.MechanismState.INITIAL:
            raise errors.MechanismConstructionError(
                name,
                "constructor returned a mechanism in state {}".format(
                    instance.state.name),
            )

        return instance

    def is_supported(self, name):
        """
        Return true if :meth:`create` can resolve `name`.
        """
        if not isinstance(name, str) or not name:
            return False
        return (registry_mod.normalize_name(name) in _BUILTIN_DISPATCH or
                name in self.registry)

    def supported(self, names):
        """
        Return the elements of `names` which :meth:`create` can resolve,
        preserving their order and spelling.
        """
        return [name for name in names if self.is_supported(name)]
