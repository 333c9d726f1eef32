# -*- test-case-name: tether.agent.test.test_reconcile -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
The decision procedure which pairs a volume and a network interface with the
instance the agent runs on.
"""

from subprocess import CalledProcessError

from pyrsistent import PClass, field, pvector

from twisted.python.filepath import FilePath

from ._interfaces import IAttachmentAPI
from ._model import Instance
from ._logging import (
    ATTACH_VOLUME, ATTACH_NETWORK_INTERFACE, CREATE_FILESYSTEM,
    MOUNT_FILESYSTEM, NO_AVAILABLE_VOLUME, NO_MATCHING_NETWORK_INTERFACE,
    NO_MATCHING_VOLUME, NODE_ID_SET, NODE_ID_MISMATCH, DEVICE_NOT_PRESENT,
    FILESYSTEM_CHECK_FAILED, OBSERVATION_FAILED, RECONCILED,
)
from .exceptions import (
    AttachFailed, MakeFilesystemError, MountError, ObservationFailed,
)
from .filesystem import IFilesystemManager, FilesystemManager


def first_available(candidates, node_id=None):
    """
    Choose the resource to attach from a list of candidates.

    The first available candidate in the given order wins.  No attempt is
    made to pick a better one when several qualify.

    :param candidates: Observed ``Volume`` or ``NetworkInterface`` instances
        in provider order.
    :param unicode node_id: If not ``None``, only candidates carrying this
        node identity qualify.

    :return: The chosen resource or ``None``.
    """
    for candidate in candidates:
        if not candidate.available:
            continue
        if node_id is not None and candidate.node_id != node_id:
            continue
        return candidate
    return None


class AttachVolume(PClass):
    """
    Attach a volume to this instance.

    :ivar Instance instance: The instance to attach to.
    :ivar Volume volume: The volume to attach.
    """
    instance = field(type=Instance, mandatory=True)
    volume = field(mandatory=True)

    @property
    def eliot_action(self):
        return ATTACH_VOLUME(
            instance_id=self.instance.id, volume_id=self.volume.id,
            node_id=self.volume.node_id,
        )

    def run(self, reconciler):
        reconciler.api.attach_volume(self.instance, self.volume)


class AttachNetworkInterface(PClass):
    """
    Attach a network interface to this instance.

    :ivar Instance instance: The instance to attach to.
    :ivar NetworkInterface network_interface: The interface to attach.
    """
    instance = field(type=Instance, mandatory=True)
    network_interface = field(mandatory=True)

    @property
    def eliot_action(self):
        return ATTACH_NETWORK_INTERFACE(
            instance_id=self.instance.id,
            network_interface_id=self.network_interface.id,
            node_id=self.network_interface.node_id,
        )

    def run(self, reconciler):
        reconciler.api.attach_network_interface(
            self.instance, self.network_interface)


class CreateFilesystem(PClass):
    """
    Create a filesystem on a block device.

    :ivar FilePath device: The device on which to create the filesystem.
    :ivar unicode filesystem: The name of the filesystem type to create.  For
        example, ``u"ext4"``.
    """
    device = field(type=FilePath, mandatory=True)
    filesystem = field(type=str, mandatory=True)

    @property
    def eliot_action(self):
        return CREATE_FILESYSTEM(
            block_device_path=self.device, filesystem_type=self.filesystem,
        )

    def run(self, reconciler):
        reconciler.filesystem_manager.make_filesystem(
            self.device, self.filesystem)


class MountFilesystem(PClass):
    """
    Mount the filesystem on a block device.

    :ivar FilePath device: The device to mount.
    :ivar FilePath mountpoint: The location at which to mount it.  If this does
        not exist, it is created.
    """
    device = field(type=FilePath, mandatory=True)
    mountpoint = field(type=FilePath, mandatory=True)

    @property
    def eliot_action(self):
        return MOUNT_FILESYSTEM(
            block_device_path=self.device, mountpoint=self.mountpoint,
        )

    def run(self, reconciler):
        reconciler.filesystem_manager.mount(self.device, self.mountpoint)


class FilesystemOptions(PClass):
    """
    What to do with the block device of an attached volume.

    :ivar FilePath device: The device the volume is attached as.
    :ivar unicode filesystem_type: The filesystem to create.
    :ivar bool create_filesystem: Whether to create a filesystem when none is
        present.
    :ivar bool mount: Whether to mount the filesystem.
    :ivar FilePath mountpoint: Where to mount it.
    """
    device = field(type=FilePath, initial=FilePath(u"/dev/xvde"),
                   mandatory=True)
    filesystem_type = field(type=str, initial=u"ext4", mandatory=True)
    create_filesystem = field(type=bool, initial=False, mandatory=True)
    mount = field(type=bool, initial=False, mandatory=True)
    mountpoint = field(type=FilePath, initial=FilePath(u"/data"),
                       mandatory=True)


class Reconciliation(PClass):
    """
    The outcome of one reconciliation.

    :ivar Instance instance: The updated instance.
    :ivar changes: The state changes which were attempted, in order, whether
        or not they succeeded.
    """
    instance = field(type=Instance, mandatory=True)
    changes = field(initial=pvector(), mandatory=True)


# Failures of a single state change.  They are logged by the change's action
# and leave the belief untouched for the next tick to retry.
_CHANGE_FAILURES = (AttachFailed, MakeFilesystemError, MountError)


class Reconciler(PClass):
    """
    Decide which resources to attach to an instance and attach them.

    :ivar api: The ``IAttachmentAPI`` provider used to attach resources.
    :ivar filesystem_manager: The ``IFilesystemManager`` provider used to
        prepare the block device of an attached volume.
    :ivar FilesystemOptions filesystem_options: What to do with that device.
    """
    api = field(
        mandatory=True,
        invariant=lambda api: (IAttachmentAPI.providedBy(api),
                               "api must provide IAttachmentAPI"),
    )
    filesystem_manager = field(
        mandatory=True, initial=FilesystemManager(),
        invariant=lambda manager: (
            IFilesystemManager.providedBy(manager),
            "filesystem_manager must provide IFilesystemManager"),
    )
    filesystem_options = field(
        type=FilesystemOptions, mandatory=True, initial=FilesystemOptions(),
    )

    def _attempt(self, change, changes):
        """
        Run a state change inside its Eliot action.

        :return: ``True`` if the change succeeded.
        """
        changes.append(change)
        try:
            with change.eliot_action:
                change.run(self)
        except _CHANGE_FAILURES:
            return False
        return True

    def _attach_volume(self, instance, volume, changes):
        if not self._attempt(
                AttachVolume(instance=instance, volume=volume), changes):
            return instance
        instance = instance.set(
            volume=volume.set(attached_to=instance.id, available=False))
        self._provision_filesystem(changes)
        return instance

    def _attach_network_interface(self, instance, network_interface, changes):
        change = AttachNetworkInterface(
            instance=instance, network_interface=network_interface)
        if not self._attempt(change, changes):
            return instance
        return instance.set(
            network_interface=network_interface.set(
                attached_to=instance.id, available=False))

    def _attach_paired_network_interface(self, instance, network_interfaces,
                                         changes):
        node_id = instance.volume.node_id
        network_interface = first_available(network_interfaces, node_id)
        if network_interface is None:
            NO_MATCHING_NETWORK_INTERFACE.log(
                instance_id=instance.id, node_id=node_id)
            return instance
        return self._attach_network_interface(
            instance, network_interface, changes)

    def _is_mounted(self, mountpoint):
        return any(
            mount.mountpoint == mountpoint
            for mount in self.filesystem_manager.get_mounts()
        )

    def _provision_filesystem(self, changes):
        """
        Create and mount the filesystem of the attached volume as configured.

        A filesystem is only ever created on a device which exists and which
        ``blkid`` positively reports as blank.
        """
        options = self.filesystem_options
        if not (options.create_filesystem or options.mount):
            return
        manager = self.filesystem_manager
        device = options.device
        if not manager.has_device(device):
            DEVICE_NOT_PRESENT.log(block_device_path=device)
            return
        try:
            has_filesystem = manager.has_filesystem(device)
        except (CalledProcessError, OSError) as e:
            FILESYSTEM_CHECK_FAILED.log(
                block_device_path=device, reason=str(e))
            return
        if not has_filesystem:
            if not options.create_filesystem:
                return
            change = CreateFilesystem(
                device=device, filesystem=options.filesystem_type)
            if not self._attempt(change, changes):
                return
        if options.mount and not self._is_mounted(options.mountpoint):
            self._attempt(
                MountFilesystem(device=device, mountpoint=options.mountpoint),
                changes,
            )

    def _check_node_id(self, instance):
        volume_node_id = instance.volume.node_id
        network_interface_node_id = instance.network_interface.node_id
        if volume_node_id != network_interface_node_id:
            NODE_ID_MISMATCH.log(
                instance_id=instance.id,
                volume_node_id=volume_node_id,
                network_interface_node_id=network_interface_node_id,
                level=u"warning",
            )
            return instance
        if instance.node_id != volume_node_id:
            NODE_ID_SET.log(
                instance_id=instance.id, node_id=volume_node_id)
            instance = instance.set(node_id=volume_node_id)
        return instance

    def reconcile(self, instance, volumes, network_interfaces):
        """
        Run the decision table once.

        ``instance`` must already have had its beliefs refreshed from
        ``volumes`` and ``network_interfaces``.  A network interface is only
        attached once a volume is believed attached, and then only one
        carrying the volume's node identity.  No attach is retried within a
        call.

        :param Instance instance: The refreshed instance.
        :param volumes: The observed volumes in provider order.
        :param network_interfaces: The observed network interfaces in provider
            order.

        :return: A ``Reconciliation``.
        """
        changes = []
        volume_attached = False
        if instance.volume is None and instance.network_interface is None:
            volume = first_available(volumes)
            if volume is None:
                NO_AVAILABLE_VOLUME.log(instance_id=instance.id)
            else:
                instance = self._attach_volume(instance, volume, changes)
                volume_attached = instance.volume is not None
                if volume_attached:
                    instance = self._attach_paired_network_interface(
                        instance, network_interfaces, changes)
        elif instance.network_interface is None:
            instance = self._attach_paired_network_interface(
                instance, network_interfaces, changes)
        elif instance.volume is None:
            node_id = instance.network_interface.node_id
            volume = first_available(volumes, node_id)
            if volume is None:
                NO_MATCHING_VOLUME.log(
                    instance_id=instance.id, node_id=node_id)
            else:
                instance = self._attach_volume(instance, volume, changes)
                volume_attached = instance.volume is not None

        if instance.volume is not None and not volume_attached:
            self._provision_filesystem(changes)

        if (instance.volume is not None and
                instance.network_interface is not None):
            instance = self._check_node_id(instance)

        return Reconciliation(instance=instance, changes=pvector(changes))


def _detached_ids(before, after):
    """
    :return: The identifiers of resources believed attached to ``before`` but
        no longer to ``after``.
    """
    detached = set()
    for old, new in [(before.volume, after.volume),
                     (before.network_interface, after.network_interface)]:
        if old is not None and new is None:
            detached.add(old.id)
    return detached


class AttachmentController(object):
    """
    Observe, refresh and reconcile; the owner of the agent's ``Instance``.

    :ivar Instance instance: The current belief about this instance.  It is
        replaced once per call to ``reconcile_once``.
    :ivar api: The ``IAttachmentAPI`` provider used to observe resources.
    :ivar filters: The filter value passed through to the listing calls.
    :ivar Reconciler reconciler: The decision procedure.
    """
    def __init__(self, instance, api, filters, reconciler=None):
        if reconciler is None:
            reconciler = Reconciler(api=api)
        self.instance = instance
        self.api = api
        self.filters = filters
        self.reconciler = reconciler

    def _observe(self, lister):
        try:
            return list(lister(self.instance, self.filters))
        except ObservationFailed as e:
            OBSERVATION_FAILED.log(
                resource_kind=e.resource_kind, reason=e.reason)
            return []

    def reconcile_once(self):
        """
        Run one tick: observe, refresh beliefs, reconcile.

        :return: The ``Reconciliation`` for this tick.
        """
        volumes = self._observe(self.api.list_volumes)
        network_interfaces = self._observe(self.api.list_network_interfaces)
        instance = self.instance.refresh_volume_belief(volumes)
        instance = instance.refresh_network_interface_belief(
            network_interfaces)
        # A resource seen detaching is not attached again in the same tick.
        detached = _detached_ids(self.instance, instance)
        result = self.reconciler.reconcile(
            instance,
            [v for v in volumes if v.id not in detached],
            [n for n in network_interfaces if n.id not in detached],
        )
        self.instance = result.instance
        RECONCILED.log(
            instance_id=self.instance.id,
            node_id=self.instance.node_id,
            volume=self.instance.volume,
            network_interface=self.instance.network_interface,
        )
        return result
