########################################################################
# File name: statemachine.py
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
:mod:`~xmppsasl.statemachine` -- Utils for implementing a state machine
#######################################################################

.. autoclass:: OrderedStateMachine

"""
import logging


logger = logging.getLogger(__name__)


class OrderedStateMachine:
    """
    :class:`OrderedStateMachine` stores the state of a state machine whose
    states are ordered and which can only ever move forwards.

    The state machine uses `initial_state` as initial state. States used by
    :class:`OrderedStateMachine` must be ordered; a sanity check is performed
    by checking if the `initial_state` is less than itself. If that check
    fails, :class:`TypeError` is raised.

    `final_states` is a collection of states which cannot be left by writing
    to :attr:`state`, even if the new state would be greater. Use
    :meth:`escalate` to move out of a final state.

    .. autoattribute:: state

    .. automethod:: escalate

    .. automethod:: is_final
    """

    def __init__(self, initial_state, final_states=()):
        try:
            initial_state < initial_state
        except (TypeError, AttributeError):
            raise TypeError("states must be ordered")

        self._state = initial_state
        self._final_states = frozenset(final_states)

    @property
    def state(self):
        """
        The current state of the state machine. Writing to this attribute
        advances the state of the state machine.

        Attempting to change the state to a state which is *less* than the
        current state will result in a :class:`ValueError` exception; an
        :class:`OrderedStateMachine` can only move forwards. Writing to the
        attribute while in a final state raises :class:`ValueError`, too.
        """
        return self._state

    @state.setter
    def state(self, new_state):
        if new_state < self._state:
            raise ValueError("cannot rewind OrderedStateMachine "
                             "({} < {})".format(
                                 new_state, self._state))
        if self._state in self._final_states and new_state != self._state:
            raise ValueError("cannot leave final state {}".format(
                self._state))
        logger.debug("%s -> %s", self._state, new_state)
        self._state = new_state

    def escalate(self, new_state):
        """
        Move to `new_state`, even if the current state is final.

        This is the exceptional way to, for example, revoke a successful
        outcome. The ordering is still enforced: `new_state` must not be less
        than the current state.
        """
        if new_state < self._state:
            raise ValueError("cannot escalate backwards "
                             "({} < {})".format(new_state, self._state))
        logger.debug("%s => %s", self._state, new_state)
        self._state = new_state

    def is_final(self):
        """
        Return true if the current state is one of the final states.
        """
        return self._state in self._final_states
