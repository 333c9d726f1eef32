# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Errors raised by the attachment agent and its collaborators.
"""


class MetadataError(Exception):
    """
    The instance's own identity could not be read from instance metadata.

    Without an identity no attachment decision is possible, so this error is
    fatal to the agent.

    :ivar unicode path: The metadata path being read when the error occurred.
    :ivar unicode reason: A description of the underlying failure.
    """
    def __init__(self, path, reason):
        Exception.__init__(self, path, reason)
        self.path = path
        self.reason = reason


class ObservationFailed(Exception):
    """
    Listing candidate volumes or network interfaces failed.

    :ivar unicode resource_kind: ``u"volume"`` or ``u"network_interface"``.
    :ivar unicode reason: A description of the underlying failure.
    """
    def __init__(self, resource_kind, reason):
        Exception.__init__(self, resource_kind, reason)
        self.resource_kind = resource_kind
        self.reason = reason


class AttachFailed(Exception):
    """
    The provider refused to attach a resource to an instance.  Usually
    another agent won the race for it.

    :ivar unicode resource_id: The volume or network interface identifier.
    :ivar unicode instance_id: The instance it was to be attached to.
    :ivar unicode reason: The provider's explanation.
    """
    def __init__(self, resource_id, instance_id, reason):
        Exception.__init__(self, resource_id, instance_id, reason)
        self.resource_id = resource_id
        self.instance_id = instance_id
        self.reason = reason


class MakeFilesystemError(Exception):
    """
    Raised from errors while making a filesystem on a block device.

    :ivar FilePath blockdevice: The path to the block device that was
        being formatted when the error occurred.
    :ivar unicode source_message: The error message describing the error.
    """
    def __init__(self, blockdevice, source_message):
        Exception.__init__(self, blockdevice, source_message)
        self.blockdevice = blockdevice
        self.source_message = source_message


class MountError(Exception):
    """
    Raised from errors while mounting a block device.

    :ivar FilePath blockdevice: The path to the block device that was
        being mounted when the error occurred.
    :ivar FilePath mountpoint: The path that the block device was going to be
        mounted at when the error occurred.
    :ivar unicode source_message: The error message describing the error.
    """
    def __init__(self, blockdevice, mountpoint, source_message):
        Exception.__init__(self, blockdevice, mountpoint, source_message)
        self.blockdevice = blockdevice
        self.mountpoint = mountpoint
        self.source_message = source_message
