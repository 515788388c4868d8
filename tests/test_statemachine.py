########################################################################
# File name: test_statemachine.py
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
import functools
import unittest

from enum import Enum

import xmppsasl.statemachine as statemachine


@functools.total_ordering
class States(Enum):
    STATE1 = 1
    STATE2 = 2
    STATE3 = 3
    STATE4 = 4

    def __lt__(self, other):
        return self.value < other.value


class TestOrderedStateMachine(unittest.TestCase):
    def setUp(self):
        self.osm = statemachine.OrderedStateMachine(
            States.STATE1,
            final_states=(States.STATE3,),
        )

    def tearDown(self):
        del self.osm

    def test_init(self):
        osm = statemachine.OrderedStateMachine(States.STATE1)
        self.assertEqual(States.STATE1, osm.state)
        self.assertFalse(osm.is_final())

    def test_init_rejects_unordered_state_type(self):
        class OtherStates(Enum):
            FOO = 1
            BAR = 2

        with self.assertRaisesRegex(TypeError,
                                    "states must be ordered"):
            statemachine.OrderedStateMachine(OtherStates.FOO)

    def test_advance(self):
        self.osm.state = States.STATE2
        self.assertEqual(self.osm.state, States.STATE2)
        self.osm.state = States.STATE2
        self.assertEqual(self.osm.state, States.STATE2)

    def test_may_skip_states(self):
        self.osm.state = States.STATE4
        self.assertEqual(self.osm.state, States.STATE4)

    def test_rejects_rewind(self):
        self.osm.state = States.STATE2
        with self.assertRaisesRegex(ValueError, "cannot rewind"):
            self.osm.state = States.STATE1
        self.assertEqual(self.osm.state, States.STATE2)

    def test_final_state_cannot_be_left_by_assignment(self):
        self.osm.state = States.STATE3
        self.assertTrue(self.osm.is_final())

        with self.assertRaisesRegex(ValueError, "final state"):
            self.osm.state = States.STATE4

        self.assertEqual(self.osm.state, States.STATE3)

    def test_assigning_final_state_again_is_allowed(self):
        self.osm.state = States.STATE3
        self.osm.state = States.STATE3
        self.assertEqual(self.osm.state, States.STATE3)

    def test_escalate_leaves_final_state(self):
        self.osm.state = States.STATE3
        self.osm.escalate(States.STATE4)
        self.assertEqual(self.osm.state, States.STATE4)
        self.assertFalse(self.osm.is_final())

    def test_escalate_rejects_rewind(self):
        self.osm.state = States.STATE3
        with self.assertRaisesRegex(ValueError, "backwards"):
            self.osm.escalate(States.STATE2)
        self.assertEqual(self.osm.state, States.STATE3)
