# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Tests for ``tether.agent.script``.
"""

from jsonschema.exceptions import ValidationError

from twisted.application.service import Service
from twisted.python.filepath import FilePath
from twisted.python.usage import UsageError

from zope.interface.verify import verifyObject

from ...common.script import ICommandLineScript
from ...testtools import (
    TestCase, StandardOptionsTestsMixin, MemoryCoreReactor,
)
from .._loop import ReconcileLoopService
from .._model import Volume, NetworkInterface
from .._reconcile import FilesystemOptions
from ..ec2 import InstanceMetadata
from ..exceptions import MetadataError
from ..script import (
    AgentOptions, AgentScript, AgentServiceFactory, validate_configuration,
)
from ..testtools import FakeAttachmentAPI, FakeFilesystemManager

METADATA = InstanceMetadata(
    instance_id=u"i-self",
    region=u"eu-west-1",
    availability_zone=u"eu-west-1b",
)


class AgentOptionsStandardTests(StandardOptionsTestsMixin, TestCase):
    """
    ``AgentOptions`` has the standard options.
    """
    options = AgentOptions


class AgentOptionsTests(TestCase):
    """
    Tests for ``AgentOptions``.
    """
    def parse(self, arguments):
        options = AgentOptions()
        options.parseOptions(arguments)
        return options

    def write_configuration(self, content):
        return self.make_temporary_file(content).path

    def test_defaults(self):
        """
        Without arguments the documented defaults are used.
        """
        options = self.parse([])
        self.assertEqual(
            {"filters": u"",
             "block-device": u"/dev/xvde",
             "create-file-system": False,
             "file-system-type": u"ext4",
             "mount-fs": False,
             "mount-point": u"/data",
             "node-id-tag": u"NodeID",
             "device-index": 1,
             "interval": 10.0},
            {key: options[key] for key in [
                "filters", "block-device", "create-file-system",
                "file-system-type", "mount-fs", "mount-point",
                "node-id-tag", "device-index", "interval"]}
        )

    def test_command_line(self):
        """
        Values given on the command line are used.
        """
        options = self.parse([
            "--filters", "tag-key=Env,Profile=foo",
            "--block-device", "/dev/xvdf",
            "--create-file-system",
            "--file-system-type", "xfs",
            "--mount-fs",
            "--mount-point", "/srv",
            "--node-id-tag", "Node",
            "--device-index", "2",
            "--interval", "2.5",
        ])
        self.assertEqual(
            (u"tag-key=Env,Profile=foo", u"/dev/xvdf", True, u"xfs", True,
             u"/srv", u"Node", 2, 2.5),
            (options["filters"], options["block-device"],
             options["create-file-system"], options["file-system-type"],
             options["mount-fs"], options["mount-point"],
             options["node-id-tag"], options["device-index"],
             options["interval"])
        )

    def test_configuration_file(self):
        """
        Values from ``--agent-config`` replace the defaults.
        """
        path = self.write_configuration(
            b"version: 1\n"
            b"filters: Profile=db\n"
            b"mount-fs: true\n"
            b"interval: 5\n"
        )
        options = self.parse(["--agent-config", path])
        self.assertEqual(
            (u"Profile=db", True, 5, u"ext4"),
            (options["filters"], options["mount-fs"], options["interval"],
             options["file-system-type"])
        )

    def test_command_line_wins(self):
        """
        Values given on the command line win over the configuration file.
        """
        path = self.write_configuration(
            b"version: 1\n"
            b"filters: Profile=db\n"
            b"interval: 5\n"
        )
        options = self.parse(
            ["-c", path, "--interval", "2", "--filters", "Profile=web"])
        self.assertEqual(
            (u"Profile=web", 2.0),
            (options["filters"], options["interval"])
        )

    def test_missing_configuration_file(self):
        """
        A configuration file which cannot be read is a usage error.
        """
        path = self.make_temporary_path().path
        error = self.assertRaises(
            UsageError, self.parse, ["--agent-config", path])
        self.assertIn(u"Unable to read", str(error))

    def test_unparseable_configuration_file(self):
        """
        A configuration file which is not YAML is a usage error.
        """
        path = self.write_configuration(b"version: [1\n")
        error = self.assertRaises(
            UsageError, self.parse, ["--agent-config", path])
        self.assertIn(u"Unable to parse", str(error))

    def test_invalid_configuration_file(self):
        """
        A configuration file which does not match the schema is a usage
        error.
        """
        path = self.write_configuration(b"version: 1\nmount-fs: yes-please\n")
        error = self.assertRaises(
            UsageError, self.parse, ["--agent-config", path])
        self.assertIn(u"is invalid", str(error))

    def test_invalid_filters(self):
        """
        A malformed filter expression is a usage error.
        """
        self.assertRaises(UsageError, self.parse, ["--filters", "Profile"])

    def test_invalid_interval(self):
        """
        The interval must be positive.
        """
        self.assertRaises(UsageError, self.parse, ["--interval", "0"])

    def test_invalid_device_index(self):
        """
        Network interfaces cannot replace the primary interface at device
        index 0.
        """
        self.assertRaises(UsageError, self.parse, ["--device-index", "0"])


class ValidateConfigurationTests(TestCase):
    """
    Tests for ``validate_configuration``.
    """
    def test_minimal(self):
        """
        Only the version is required.
        """
        validate_configuration({"version": 1})

    def test_full(self):
        """
        Every option may be given.
        """
        validate_configuration({
            "version": 1,
            "filters": u"Profile=db",
            "block-device": u"/dev/xvdf",
            "create-file-system": True,
            "file-system-type": u"xfs",
            "mount-fs": True,
            "mount-point": u"/srv",
            "node-id-tag": u"Node",
            "device-index": 1,
            "interval": 0.5,
        })

    def test_missing_version(self):
        """
        The version is required.
        """
        self.assertRaises(
            ValidationError, validate_configuration, {"filters": u""})

    def test_wrong_version(self):
        """
        Only version 1 is understood.
        """
        self.assertRaises(
            ValidationError, validate_configuration, {"version": 2})

    def test_unknown_key(self):
        """
        Unknown keys are rejected.
        """
        self.assertRaises(
            ValidationError, validate_configuration,
            {"version": 1, "mount_point": u"/data"})

    def test_relative_mount_point(self):
        """
        The mount point must be an absolute path.
        """
        self.assertRaises(
            ValidationError, validate_configuration,
            {"version": 1, "mount-point": u"data"})

    def test_zero_interval(self):
        """
        The interval must be positive.
        """
        self.assertRaises(
            ValidationError, validate_configuration,
            {"version": 1, "interval": 0})


class AgentScriptTests(TestCase):
    """
    Tests for ``AgentScript``.
    """
    def test_interface(self):
        """
        ``AgentScript`` provides ``ICommandLineScript``.
        """
        self.assertTrue(verifyObject(
            ICommandLineScript,
            AgentScript(service_factory=lambda reactor, options: Service()),
        ))

    def test_runs_service(self):
        """
        ``AgentScript.main`` starts the service made by the factory and stops
        it when the reactor shuts down.
        """
        service = Service()
        options = AgentOptions()
        options.parseOptions([])
        reactor = MemoryCoreReactor()
        script = AgentScript(
            service_factory=lambda reactor, options: service)
        d = script.main(reactor, options)
        started = service.running
        reactor.fireSystemEvent("shutdown")
        self.successResultOf(d)
        self.assertEqual((True, False), (started, service.running))


class AgentServiceFactoryTests(TestCase):
    """
    Tests for ``AgentServiceFactory``.
    """
    def setUp(self):
        super(AgentServiceFactoryTests, self).setUp()
        self.api = FakeAttachmentAPI()
        self.api_requests = []
        self.filesystem_manager = FakeFilesystemManager()

    def api_factory(self, region, options):
        self.api_requests.append(region)
        return self.api

    def factory(self, get_metadata=lambda: METADATA):
        return AgentServiceFactory(
            get_metadata=get_metadata,
            api_factory=self.api_factory,
            filesystem_manager=self.filesystem_manager,
        )

    def options(self, arguments=()):
        options = AgentOptions()
        options.parseOptions(list(arguments))
        return options

    def test_service(self):
        """
        ``get_service`` returns a ``ReconcileLoopService`` using the
        configured interval and a controller for this instance.
        """
        service = self.factory().get_service(
            MemoryCoreReactor(), self.options(["--interval", "3"]))
        controller = service.controller
        self.assertEqual(
            (ReconcileLoopService, 3.0, u"i-self", u"eu-west-1b",
             [u"eu-west-1"], self.api),
            (type(service), service.interval, controller.instance.id,
             controller.instance.availability_zone, self.api_requests,
             controller.api)
        )

    def test_filters(self):
        """
        The controller filters by the user's filters, the node identity tag
        and this instance's availability zone.
        """
        service = self.factory().get_service(
            MemoryCoreReactor(), self.options(
                ["--filters", "Profile=db", "--node-id-tag", "Node"]))
        self.assertEqual(
            [{"Name": u"tag:Profile", "Values": [u"db"]},
             {"Name": u"tag-key", "Values": [u"Node"]},
             {"Name": u"availability-zone", "Values": [u"eu-west-1b"]}],
            service.controller.filters
        )

    def test_filesystem_options(self):
        """
        The reconciler provisions the filesystem as configured.
        """
        service = self.factory().get_service(
            MemoryCoreReactor(), self.options([
                "--block-device", "/dev/xvdf", "--create-file-system",
                "--file-system-type", "xfs", "--mount-point", "/srv",
            ]))
        reconciler = service.controller.reconciler
        self.assertEqual(
            (FilesystemOptions(
                device=FilePath(u"/dev/xvdf"),
                filesystem_type=u"xfs",
                create_filesystem=True,
                mount=False,
                mountpoint=FilePath(u"/srv"),
            ), self.filesystem_manager, self.api),
            (reconciler.filesystem_options, reconciler.filesystem_manager,
             reconciler.api)
        )

    def test_metadata_error(self):
        """
        If this instance's identity is unavailable ``MetadataError``
        propagates and no service is created.
        """
        def get_metadata():
            raise MetadataError(
                path=u"meta-data/instance-id", reason=u"unreachable")
        self.assertRaises(
            MetadataError,
            self.factory(get_metadata=get_metadata).get_service,
            MemoryCoreReactor(), self.options(),
        )

    def test_attaches_on_start(self):
        """
        Once started the service attaches an available pair straight away.
        """
        self.api.volumes.append(
            Volume(id=u"vol-1", available=True, node_id=u"n1"))
        self.api.network_interfaces.extend([
            NetworkInterface(id=u"eni-2", available=True, node_id=u"n2"),
            NetworkInterface(id=u"eni-1", available=True, node_id=u"n1"),
        ])
        reactor = MemoryCoreReactor()
        service = self.factory().get_service(reactor, self.options())
        service.startService()
        self.addCleanup(service.stopService)
        self.assertEqual(
            [(u"volume", u"vol-1", u"i-self"),
             (u"network_interface", u"eni-1", u"i-self")],
            self.api.attach_calls
        )
