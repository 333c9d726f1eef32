# -*- test-case-name: tether.common.test.test_process -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Running the system tools the agent drives, such as ``blkid``, ``mkfs`` and
``mount``.
"""

from subprocess import PIPE, STDOUT, CalledProcessError, run

from eliot import start_action
from pyrsistent import PClass, field


class ProcessResult(PClass):
    """
    A child process which exited successfully.

    :ivar list command: The argument list the child was started with.
    :ivar bytes output: Everything the child wrote to stdout and stderr.
    :ivar int status: The exit status, always ``0``.
    """
    command = field(type=list, mandatory=True)
    output = field(type=bytes, mandatory=True)
    status = field(type=int, mandatory=True)


class ProcessFailed(CalledProcessError):
    """
    A ``CalledProcessError`` whose text ends with the child's output, so logs
    which only record the exception text still show what the tool said.
    """
    def __str__(self):
        message = CalledProcessError.__str__(self)
        output = self.output.decode("utf-8", "replace").rstrip()
        if output:
            message += u" Output:\n" + output
        return message


def run_process(command):
    """
    Run a child process to completion with stdout and stderr merged.

    The run is logged as a ``tether:common:run_process`` action; on success
    its status and decoded output are added to the end of the action.

    :param list command: The argument list.  ``command[0]`` is looked up on
        ``PATH``.

    :raises ProcessFailed: If the child exits with a non-zero status or is
        killed by a signal.
    :return: A ``ProcessResult``.
    """
    with start_action(action_type=u"tether:common:run_process",
                      command=command) as action:
        completed = run(command, stdout=PIPE, stderr=STDOUT)
        if completed.returncode != 0:
            raise ProcessFailed(
                returncode=completed.returncode, cmd=command,
                output=completed.stdout,
            )
        action.add_success_fields(
            status=completed.returncode,
            output=completed.stdout.decode("utf-8", "replace"),
        )
    return ProcessResult(
        command=command, output=completed.stdout, status=completed.returncode,
    )
