# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Components shared by the Tether agent and its command-line script.
"""

__all__ = [
    'ProcessFailed', 'ProcessResult', 'run_process',
]

from .process import ProcessFailed, ProcessResult, run_process
