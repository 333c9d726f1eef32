# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Helpers shared by tether's test suites.
"""

import io
from unittest import SkipTest

from fixtures import TempDir
import testtools

from twisted.internet.task import Clock
from twisted.internet.testing import MemoryReactor
from twisted.python.filepath import FilePath
from twisted.trial.unittest import SynchronousTestCase

from . import __version__


class TestCase(testtools.TestCase):
    """
    A testtools ``TestCase`` with temporary path helpers and Twisted's
    synchronous ``Deferred`` assertions.
    """
    # eliot.testing.validateLogging recognizes skips by unittest.SkipTest.
    skipException = SkipTest

    successResultOf = SynchronousTestCase.successResultOf
    failureResultOf = SynchronousTestCase.failureResultOf
    assertNoResult = SynchronousTestCase.assertNoResult
    # Needed by the three above.
    assertIdentical = SynchronousTestCase.assertIdentical

    def make_temporary_directory(self):
        """
        :return: A ``FilePath`` for a new directory, removed after the test.
        """
        return FilePath(self.useFixture(TempDir()).path)

    def make_temporary_path(self):
        """
        :return: A ``FilePath`` which does not exist yet but whose parent
            does.
        """
        return self.make_temporary_directory().child(u"temp")

    def make_temporary_file(self, content=b""):
        """
        :param bytes content: What the file holds.

        :return: A ``FilePath`` for a new file.
        """
        path = self.make_temporary_path()
        path.setContent(content)
        return path


class FakeSysModule(object):
    """
    Stand-in for ``sys`` with captured standard output and error.

    :ivar list argv: The command line.
    :ivar io.StringIO stdout: Captured standard output.
    :ivar io.StringIO stderr: Captured standard error.
    """
    def __init__(self, argv=()):
        self.argv = list(argv)
        self.stdout = io.StringIO()
        self.stderr = io.StringIO()


class StandardOptionsTestsMixin(object):
    """
    Tests for the options inherited from ``StandardOptions``.

    :ivar options: The ``StandardOptions`` subclass under test.
    """
    options = None

    def parse(self, arguments, **kwargs):
        options = self.options(**kwargs)
        options.parseOptions(arguments)
        return options

    def test_version(self):
        """
        ``--version`` prints the version and exits with status 0.
        """
        sys_module = FakeSysModule()
        error = self.assertRaises(
            SystemExit, self.parse, [u"--version"], sys_module=sys_module)
        self.assertEqual(
            (0, __version__ + u"\n"),
            (error.code, sys_module.stdout.getvalue())
        )

    def test_verbosity(self):
        """
        Verbosity starts at 0 and each ``--verbose`` or ``-v`` adds one.
        """
        self.assertEqual(
            [0, 1, 1, 3],
            [self.parse(arguments)[u"verbosity"] for arguments in [
                [], [u"--verbose"], [u"-v"], [u"-v", u"--verbose", u"-v"]]]
        )

    def test_logfile_default(self):
        """
        Without ``--logfile`` logs go to standard output.
        """
        sys_module = FakeSysModule()
        options = self.parse([], sys_module=sys_module)
        self.assertIs(sys_module.stdout, options[u"logfile"])

    def test_logfile(self):
        """
        ``--logfile`` opens a rotated log file at the given path, creating
        the directories leading to it.
        """
        path = self.make_temporary_directory().descendant(
            [u"var", u"log", u"tether.log"])
        logfile = self.parse([u"--logfile", path.path])[u"logfile"]
        self.addCleanup(logfile.close)
        self.assertEqual(
            (path.path, 100 * 1024 * 1024, 5),
            (logfile.path, logfile.rotateLength, logfile.maxRotatedFiles)
        )


class MemoryCoreReactor(MemoryReactor, Clock):
    """
    A ``MemoryReactor`` which is also a ``Clock`` and can fire the system
    event triggers registered with it.
    """
    def __init__(self):
        MemoryReactor.__init__(self)
        Clock.__init__(self)

    def fireSystemEvent(self, event_type):
        """
        Call every trigger registered for ``event_type``, phase by phase.
        """
        for phase in (u"before", u"during", u"after"):
            triggers = self.triggers.get(phase, {}).get(event_type, [])
            for f, args, kwargs in list(triggers):
                f(*args, **kwargs)
