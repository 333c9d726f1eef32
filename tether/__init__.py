# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Tether attaches a companion EBS volume and secondary network interface to the
EC2 instance it runs on, pairing them by a shared node identity tag.
"""

__version__ = "0.1.0"


def _redirect_eliot_logs_for_trial():
    """
    Enable Eliot logging to the ``_trial/test.log`` file.
    """
    import os
    import sys
    if os.path.basename(sys.argv[0]) == "trial":
        from eliot.twisted import redirectLogsForTrial
        redirectLogsForTrial()
_redirect_eliot_logs_for_trial()
del _redirect_eliot_logs_for_trial
