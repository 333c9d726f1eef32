# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Interfaces for the cloud provider operations the agent relies on.
"""

from zope.interface import Interface


class IAttachmentAPI(Interface):
    """
    Observe candidate volumes and network interfaces and attach them to an
    instance.

    Listing methods return resources in the provider's order; the agent's
    tie-break rule depends on that order being deterministic for a given
    snapshot.
    """
    def list_volumes(instance, filters):
        """
        List candidate volumes.

        :param Instance instance: The instance doing the observing.
        :param filters: An opaque, pre-built filter value.

        :raises ObservationFailed: If the provider could not be queried.
        :returns: A ``list`` of ``Volume``.
        """

    def list_network_interfaces(instance, filters):
        """
        List candidate network interfaces.

        :param Instance instance: The instance doing the observing.
        :param filters: An opaque, pre-built filter value.

        :raises ObservationFailed: If the provider could not be queried.
        :returns: A ``list`` of ``NetworkInterface``.
        """

    def attach_volume(instance, volume):
        """
        Attach ``volume`` to ``instance``.

        :raises AttachFailed: If the provider refused the attachment.
        """

    def attach_network_interface(instance, network_interface):
        """
        Attach ``network_interface`` to ``instance``.

        :raises AttachFailed: If the provider refused the attachment.
        """
