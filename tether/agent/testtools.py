# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
In-memory implementations of the agent's collaborators, for testing.
"""

from subprocess import CalledProcessError

from zope.interface import implementer

from ._interfaces import IAttachmentAPI
from ._model import Instance
from .exceptions import (
    AttachFailed, MakeFilesystemError, MountError, ObservationFailed,
)
from .filesystem import IFilesystemManager, MountInfo


def make_instance(instance_id=u"i-1", **kwargs):
    """
    Create an ``Instance`` with test defaults.
    """
    kwargs.setdefault("region", u"us-east-1")
    kwargs.setdefault("availability_zone", u"us-east-1a")
    return Instance(id=instance_id, **kwargs)


@implementer(IAttachmentAPI)
class FakeAttachmentAPI(object):
    """
    An ``IAttachmentAPI`` holding resources in memory.

    A successful attach marks the resource attached to the instance and no
    longer available, just as EC2 reports it on the next observation.

    :ivar list volumes: The ``Volume`` records, in listing order.
    :ivar list network_interfaces: The ``NetworkInterface`` records, in
        listing order.
    :ivar list attach_calls: ``(kind, resource_id, instance_id)`` for every
        attach attempt, successful or not.
    :ivar list filters_seen: The filters passed to each listing call.
    :ivar set refuse: Identifiers of resources whose attachment fails.
    :ivar set observation_failures: Resource kinds, ``u"volume"`` or
        ``u"network_interface"``, whose listing fails.
    """
    def __init__(self, volumes=(), network_interfaces=()):
        self.volumes = list(volumes)
        self.network_interfaces = list(network_interfaces)
        self.attach_calls = []
        self.filters_seen = []
        self.refuse = set()
        self.observation_failures = set()

    def _list(self, kind, resources, filters):
        self.filters_seen.append(filters)
        if kind in self.observation_failures:
            raise ObservationFailed(resource_kind=kind, reason=u"unavailable")
        return list(resources)

    def _attach(self, kind, resources, instance, resource_id):
        self.attach_calls.append((kind, resource_id, instance.id))
        if resource_id in self.refuse:
            raise AttachFailed(
                resource_id=resource_id, instance_id=instance.id,
                reason=u"refused",
            )
        for index, resource in enumerate(resources):
            if resource.id == resource_id:
                if not resource.available:
                    raise AttachFailed(
                        resource_id=resource_id, instance_id=instance.id,
                        reason=u"in use",
                    )
                resources[index] = resource.set(
                    attached_to=instance.id, available=False)
                return
        raise AttachFailed(
            resource_id=resource_id, instance_id=instance.id,
            reason=u"not found",
        )

    def list_volumes(self, instance, filters):
        return self._list(u"volume", self.volumes, filters)

    def list_network_interfaces(self, instance, filters):
        return self._list(
            u"network_interface", self.network_interfaces, filters)

    def attach_volume(self, instance, volume):
        self._attach(u"volume", self.volumes, instance, volume.id)

    def attach_network_interface(self, instance, network_interface):
        self._attach(
            u"network_interface", self.network_interfaces, instance,
            network_interface.id)

    def detach(self, resource_id):
        """
        Mark a resource detached and available, as if an operator detached
        it.
        """
        for resources in (self.volumes, self.network_interfaces):
            for index, resource in enumerate(resources):
                if resource.id == resource_id:
                    resources[index] = resource.set(
                        attached_to=u"", available=True)


@implementer(IFilesystemManager)
class FakeFilesystemManager(object):
    """
    An ``IFilesystemManager`` which records what it is asked to do.

    :ivar set devices: Paths of device nodes which exist.
    :ivar dict filesystems: Maps device paths to the filesystem type on them.
    :ivar list mounts: ``MountInfo`` for everything mounted.
    :ivar list made: ``(device, filesystem)`` for every ``make_filesystem``
        call.
    :ivar bool fail_check: Whether ``has_filesystem`` fails.
    :ivar bool fail_make: Whether ``make_filesystem`` fails.
    :ivar bool fail_mount: Whether ``mount`` fails.
    """
    def __init__(self, devices=()):
        self.devices = set(devices)
        self.filesystems = {}
        self.mounts = []
        self.made = []
        self.fail_check = False
        self.fail_make = False
        self.fail_mount = False

    def has_device(self, device):
        return device.path in self.devices

    def has_filesystem(self, device):
        if self.fail_check:
            raise CalledProcessError(
                returncode=4, cmd=[u"blkid", device.path],
                output=b"blkid: error: " + device.path.encode("utf-8"),
            )
        return device.path in self.filesystems

    def make_filesystem(self, device, filesystem_type):
        self.made.append((device, filesystem_type))
        if self.fail_make:
            raise MakeFilesystemError(
                blockdevice=device, source_message=u"mkfs failed")
        self.filesystems[device.path] = filesystem_type

    def mount(self, device, mountpoint):
        if self.fail_mount:
            raise MountError(
                blockdevice=device, mountpoint=mountpoint,
                source_message=u"mount failed",
            )
        self.mounts.append(
            MountInfo(blockdevice=device, mountpoint=mountpoint))

    def get_mounts(self):
        return list(self.mounts)
