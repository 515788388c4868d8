########################################################################
# File name: testutils.py
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
This module contains utilities used for testing xmppsasl code and code built
on top of it.
"""
import asyncio
import logging
import os
import time
import unittest.mock

import aiosasl


logger = logging.getLogger(__name__)


GLOBAL_TIMEOUT_FACTOR = 1.0

_monotonic_info = time.get_clock_info("monotonic")
# this is a fun hack to make things work on windows, where the monotonic
# resolution isn’t that great
GLOBAL_TIMEOUT_FACTOR *= max(_monotonic_info.resolution, 0.0015) / 0.0015

if os.environ.get("CI") == "true":
    GLOBAL_TIMEOUT_FACTOR *= 4
    logger.debug("increasing GLOBAL_TIMEOUT_FACTOR for CI")


def get_timeout(base):
    return base * GLOBAL_TIMEOUT_FACTOR


DEFAULT_TIMEOUT = get_timeout(1.0)


def run_coroutine(coroutine, timeout=DEFAULT_TIMEOUT, loop=None):
    if loop is None:
        return asyncio.run(asyncio.wait_for(coroutine, timeout=timeout))
    return loop.run_until_complete(
        asyncio.wait_for(
            coroutine,
            timeout=timeout))


class CoroutineMock(unittest.mock.Mock):
    delay = 0

    async def __call__(self, *args, **kwargs):
        result = super().__call__(*args, **kwargs)
        await asyncio.sleep(self.delay)
        return result


class SASLInterfaceMock(aiosasl.SASLInterface):
    """
    A scripted :class:`aiosasl.SASLInterface`.

    `action_sequence` is a list of tuples ``(action, payload, new_state,
    result_payload)``. `action` is ``"auth;<mechanism>"``, ``"response"`` or
    ``"abort"``; `payload` is the payload the test expects to be sent. The
    interface replies with `new_state` (one of ``"challenge"``,
    ``"success"`` and ``"failure"``) and `result_payload`. For
    ``"failure"``, `result_payload` is a pair ``(opaque_error, text)`` which
    is raised as :class:`aiosasl.SASLFailure`, except for ``"abort"``.

    Call :meth:`finalize` at the end of the test to check that all actions
    have been performed.
    """

    def __init__(self, testobj, action_sequence):
        super().__init__()
        self._testobj = testobj
        self._action_sequence = list(action_sequence)

    def _check_action(self, action, payload):
        try:
            (next_action,
             next_payload,
             new_state,
             result_payload) = self._action_sequence.pop(0)
        except IndexError:
            raise AssertionError(
                "SASL action performed unexpectedly: "
                "{} with payload {}".format(
                    action,
                    payload))

        self._testobj.assertEqual(
            action,
            next_action,
            "SASL action sequence violated")

        self._testobj.assertEqual(
            payload,
            next_payload,
            "SASL payload expectation violated")

        if new_state == "failure" and action != "abort":
            opaque_error, text = result_payload
            raise aiosasl.SASLFailure(opaque_error, text=text)

        if new_state == "failure":
            return new_state, None

        return new_state, result_payload

    async def initiate(self, mechanism, payload=None):
        return self._check_action("auth;"+mechanism, payload)

    async def respond(self, payload):
        return self._check_action("response", payload)

    async def abort(self):
        return self._check_action("abort", None)

    def finalize(self):
        self._testobj.assertFalse(
            self._action_sequence,
            "Not all actions performed")
