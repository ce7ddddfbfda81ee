"""
Parsing pipeline behavioral tests (records, precedence, faults, options).

Scope
- Validate typed binding of every supported slot type from the command line.
- Validate the precedence chain: command line > env > tag default > defaults option > zero.
- Validate positional binding, required checks and the faults of each stage.
- Validate parse options (name, args, handling, usage, footer, defaults, globals).

Conventions
- Test method names follow CamelCase per project convention.
- Every App writes to in-memory sinks; sys.argv and os.environ are patched.
"""

import io
import os
import sys
import unittest
from dataclasses import dataclass, field
from datetime import timedelta
from unittest import TestCase, mock

from rudder import (
    App,
    Duration,
    ErrorHandling,
    Int32,
    InvalidCommandError,
    ProgrammingError,
    RequiredArgumentError,
    UnexpectedArgumentsError,
    UnknownFlagError,
    Uint,
    cli,
)

CONTINUE = ErrorHandling.CONTINUE


class Buffer:
    def __init__(self):
        self.data = ""

    def parse(self, text):
        self.data += text

    def format(self):
        return self.data

    def get(self):
        return self.data.encode()


def application(**options):
    return App(out=io.StringIO(), completion_out=io.StringIO(), colorful=False, **options)


class ParsingTestCase(TestCase):
    def setUp(self):
        patcher = mock.patch.object(sys, "argv", ["prog"])
        patcher.start()
        self.addCleanup(patcher.stop)
        patcher = mock.patch.dict(os.environ, {}, clear=True)
        patcher.start()
        self.addCleanup(patcher.stop)


class TestParsingValues(ParsingTestCase):
    """Typed binding of flags and positional arguments."""

    def testWithoutCallingRun(self):
        @dataclass
        class Args:
            a: bool = cli("-a, -a-flag, description a flag")
            b: bool = cli("-b, description b flag", default="true")
            c: Int32 = cli("-c-flag, description c flag")

        app = application()
        args = app.parse(Args, args=["-a", "-c-flag", "12345"])
        self.assertEqual(len(app.commands), 0)
        self.assertIsNotNone(app.context)
        self.assertTrue(args.a)
        self.assertTrue(args.b)
        self.assertEqual(args.c, 12345)

    def testCheckFlagSetValues(self):
        @dataclass
        class Args:
            a: bool = cli("-a,  -a-flag, description a flag")
            a1: bool = cli("-1, -a1-flag")
            b: Int32 = cli("-b,  -b-flag, description b flag")
            c: int = cli("-c, --c-flag, description c flag")
            d: float = cli("-D, --d-flag, description d flag")
            f: str = cli("-f,  -f-flag, description f flag")
            g: Uint = cli("-g, --g-flag, description g flag")
            h: list[bool] = cli("-H, --h-flag, description h flag")
            i: list[Uint] = cli("-i,  -i-flag, description i flag")
            j: list[str] = cli("-j,  -j-flag, description j flag")
            k: Duration = cli("-k, --k-flag, description k flag")
            v: Buffer = cli("-v, -v-flag, description v flag")
            rest: list[str] = cli("some-args")

        app = application()
        args = app.parse(Args, args=[
            "-a-flag",
            "-1",
            "-b", "1",
            "-c-flag", "2",
            "-D", "3",
            "-f", "fstr",
            "-g-flag", "5",
            "-H", "true", "-H", "F", "-H", "1", "-H", "0",
            "-i", "5", "-i-flag", "6", "-i", "7", "-i-flag", "8",
            "-j-flag", "j1", "-j-flag", "j2", "-j-flag", "j,3", "-j-flag", "j,4,5",
            "-k", "1.5s",
            "-v", "abc", "-v", "123",
            "some-args 0",
            "some-args 1",
        ])
        self.assertTrue(args.a)
        self.assertTrue(args.a1)
        self.assertEqual(args.b, 1)
        self.assertEqual(args.c, 2)
        self.assertEqual(args.d, 3.0)
        self.assertEqual(args.f, "fstr")
        self.assertEqual(args.g, 5)
        self.assertEqual(args.h, [True, False, True, False])
        self.assertEqual(args.i, [5, 6, 7, 8])
        self.assertEqual(args.j, ["j1", "j2", "j,3", "j,4,5"])
        self.assertEqual(args.k, timedelta(milliseconds=1500))
        self.assertEqual(args.v.data, "abc123")
        self.assertEqual(args.rest, ["some-args 0", "some-args 1"])

        flagset = app.context.flagset
        visited = []
        flagset.visit(lambda name, argument: visited.append(name))
        self.assertEqual(len(visited), 12 * 2)
        for name, text, value in (
                ("a-flag", "true", True),
                ("1", "true", True),
                ("b-flag", "1", 1),
                ("D", "3", 3.0),
                ("g", "5", 5),
                ("H", "[true,false,true,false]", [True, False, True, False]),
                ("i-flag", "[5,6,7,8]", [5, 6, 7, 8]),
                ("j", '["j1","j2","j,3","j,4,5"]', ["j1", "j2", "j,3", "j,4,5"]),
                ("k-flag", "1.5s", timedelta(milliseconds=1500)),
                ("v", "abc123", b"abc123"),
        ):
            self.assertEqual(flagset.lookup(name).format(), text, name)
            self.assertEqual(flagset.lookup(name).get(), value, name)

    def testOptionalValues(self):
        @dataclass
        class Args:
            a: bool | None = cli("-a, -a-flag")
            a1: bool | None = cli("-1, -a1-flag")
            b: int | None = cli("-b, -b-flag")
            f: str | None = cli("-f, -f-flag")
            k: Duration | None = cli("-k, --k-flag")
            arg: str | None = cli("arg1")

        args = application().parse(Args, args=[])
        self.assertEqual((args.a, args.a1, args.b, args.f, args.k, args.arg), (None,) * 6)

        args = application().parse(Args, args=["-a-flag", "-1=false", "-b", "1", "-k", "1.5s", "arg1 value"])
        self.assertIs(args.a, True)
        self.assertIs(args.a1, False)
        self.assertEqual(args.b, 1)
        self.assertIsNone(args.f)
        self.assertEqual(args.k, timedelta(milliseconds=1500))
        self.assertEqual(args.arg, "arg1 value")

    def testReorderFlags(self):
        @dataclass
        class Args:
            name: str = cli("-n, --name, Who do you want to say to", default="tom")
            text: str = cli("#R, text, The 'message' you want to send")

        for tokens in (["hello", "-n", "Daniel"], ["-n", "Daniel", "hello"]):
            app = application()
            args = app.parse(Args, args=tokens, handling=CONTINUE)
            self.assertIsNone(app.context.fault)
            self.assertEqual(args.name, "Daniel")
            self.assertEqual(args.text, "hello")
            self.assertEqual(app.context.flagset.args, ["hello"])

    def testPositionalsAfterTerminator(self):
        @dataclass
        class Args:
            verbose: bool = cli("-v, --verbose")
            files: list[str] = cli("files")

        args = application().parse(Args, args=["a", "-v", "--", "-b", "c"])
        self.assertTrue(args.verbose)
        self.assertEqual(args.files, ["a", "-b", "c"])

    def testPosixBundling(self):
        @dataclass
        class Args:
            a: bool = cli("-a, --abool, axxx")
            b: bool = cli("-b, --bbool, bxxx")
            c: bool = cli("-c, --cbool, cxxx")
            d: str = cli("-d, --dstr, dxxx")
            e: bool = cli("-e, -ebool, exxx")

        app = application(allow_posix_stmo=True)
        args = app.parse(Args, args=["-abce"])
        self.assertEqual(app.context.flagset.lookup("ebool").format(), "true")
        self.assertTrue(args.a and args.b and args.c and args.e)

        app = application()
        app.parse(Args, args=["-abce"], handling=CONTINUE)
        self.assertIsInstance(app.context.fault, UnknownFlagError)

    def testTagSyntax(self):
        @dataclass
        class Common:
            x1: str = cli("-x x1 description")
            y1: str = cli("--y y1 description")
            z1: str = cli("-z, --z-flag z1 description")
            _private: str = cli("--private")

        @dataclass
        class Ignored:
            ignored: str = cli("-i, --ignored")

        @dataclass
        class Args:
            m1: str = cli("#R, --m1, modifier 1")
            m2: str = cli("#H, --m2     modifier 2")
            m3: str = cli("#D, --m3")
            a: int = cli("-a, -a-flag       description can be separated by spaces")
            b: int = cli("-b, --b-flag      description can be separated by spaces")
            c: int = cli("#D, -c, --c-flag, description of 'DVALUE' flag")
            common: Common = field(default_factory=Common)
            another: Ignored = cli("-")

        app = application()
        app.parse(Args, args=[], handling=CONTINUE)
        self.assertIn("flag is required but not set: -m1", str(app.context.fault))

        app = application()
        app.parse(Args, args=["-i", "ignoredstr"], handling=CONTINUE)
        self.assertEqual(str(app.context.fault), "flag provided but not defined: -i")

        app = application()
        app.parse(Args, handling=CONTINUE, args=[
            "-m1", "m1str",
            "--m2", "m2str",
            "-a", "2",
            "-b-flag", "3",
            "--c-flag", "4",
            "-x", "xstr",
            "-y", "ystr",
            "-z", "zstr",
        ])
        flagset = app.context.flagset
        self.assertIsNone(app.context.fault)
        for name, text in (("m1", "m1str"), ("m2", "m2str"), ("m3", ""), ("a", "2"), ("b", "3"),
                           ("c-flag", "4"), ("x", "xstr"), ("y", "ystr"), ("z", "zstr")):
            self.assertEqual(flagset.lookup(name).format(), text, name)
        for name in ("private", "i", "ignored"):
            self.assertIsNone(flagset.lookup(name), name)
        self.assertIn("flag '-c-flag' is deprecated", app.out.getvalue())


class TestParsingPrecedence(ParsingTestCase):
    """Defaults, environment and command-line precedence."""

    def testDefaultValues(self):
        @dataclass
        class Args:
            a1: bool = cli("-a1")
            a2: bool = cli("-a2", default="true")
            a3: bool = cli("-a3", default="true")
            b1: int = cli("-b1")
            b2: int = cli("-b2", default="1024")
            b3: int = cli("-b3", default="1024")
            s1: str = cli("-s1")
            s2: str = cli("-s2", default="s2default")
            s3: str = cli("-s3", default="s3default")
            slice1: list[str] = cli("-slice1")
            slice2: list[str] = cli("-slice2")
            arg1: list[int] = cli("arg1")

        args = application().parse(Args, handling=CONTINUE, args=[
            "-a1", "-a2=0", "-b2", "2048", "-s2=s2arg",
            "-slice2", "d", "-slice2", "e", "-slice2", "f",
            "1", "2", "3",
        ])
        self.assertEqual((args.a1, args.a2, args.a3), (True, False, True))
        self.assertEqual((args.b1, args.b2, args.b3), (0, 2048, 1024))
        self.assertEqual((args.s1, args.s2, args.s3), ("", "s2arg", "s3default"))
        self.assertEqual(args.slice1, [])
        self.assertEqual(args.slice2, ["d", "e", "f"])
        self.assertEqual(args.arg1, [1, 2, 3])

    def testEnvValues(self):
        @dataclass
        class Args:
            a1: bool = cli("-a1")
            a2: bool = cli("-a2", default="true", env="A2_BOOL, A2_BOOL_1")
            a3: bool = cli("-a3", default="true", env="A3_BOOL, A3_BOOL_1")
            b1: str = cli("-b1")
            b2: str = cli("-b2", default="b2default", env="B2_STRING")
            b3: str = cli("-b3", default="b3default", env=["B3_STRING", "B3_STRING_1"])
            b4: str = cli("-b4", default="b4default", env="B4_STRING, B4_STRING_1")
            c1: list[int] = cli("-c1")
            c2: list[int] = cli("-c2")

        os.environ.update({"A2_BOOL_1": "false", "B2_STRING": "b2env", "B3_STRING": "b3env", "B4_STRING": ""})
        app = application()
        args = app.parse(Args, args=["-a3=0", "-b3=b3arg", "-c2=7", "-c2=8", "-c2=9"], handling=CONTINUE)
        self.assertEqual((args.a1, args.a2, args.a3), (False, False, False))
        self.assertEqual((args.b1, args.b2, args.b3, args.b4), ("", "b2env", "b3arg", "b4default"))
        self.assertEqual(args.c1, [])
        self.assertEqual(args.c2, [7, 8, 9])

        app.print_help()
        got = app.out.getvalue()
        for text in (
                " (default true)",
                ' (env "A2_BOOL", "A2_BOOL_1")',
                ' (env "A3_BOOL", "A3_BOOL_1")',
                ' (default "b2default")',
                ' (env "B2_STRING")',
                ' (default "b3default")',
                ' (env "B3_STRING", "B3_STRING_1")',
        ):
            self.assertIn(text, got)

    def testOptionalEnvAndDefaults(self):
        @dataclass
        class Args:
            a1: bool | None = cli("-a1")
            a2: bool | None = cli("-a2")
            b1: int | None = cli("-b1", default="1024")
            c1: str | None = cli("-c1", env="C1_STR")
            c2: str | None = cli("-c2", default="c2default", env="C2_STR")
            c3: str | None = cli("-c3", default="c3default", env="C3_STR")
            c4: str | None = cli("-c4")
            c5: str | None = cli("-c5")
            d1: Duration | None = cli("-d1", default="1.5s")

        os.environ.update({"C1_STR": "c1EnvValue", "C3_STR": "c3EnvValue"})
        args = application().parse(Args, args=["-a2", "-c3", "c3arg", "-c4", "c4arg"])
        self.assertIsNone(args.a1)
        self.assertTrue(args.a2)
        self.assertEqual(args.b1, 1024)
        self.assertEqual((args.c1, args.c2, args.c3, args.c4, args.c5),
                         ("c1EnvValue", "c2default", "c3arg", "c4arg", None))
        self.assertEqual(args.d1, timedelta(milliseconds=1500))

    def testInvalidEnvValue(self):
        @dataclass
        class Args:
            port: int = cli("-p, --port", env="PORT")

        os.environ["PORT"] = "http"
        app = application()
        app.parse(Args, args=[], handling=CONTINUE)
        self.assertIn('invalid value "http" for flag \'-port\' from env PORT', str(app.context.fault))

    def testDefaultsOption(self):
        @dataclass
        class Args:
            name: str = cli("-n, --name")
            count: int = cli("-c, --count")
            tagged: str = cli("-t, --tagged", default="tag")
            level: int = cli("-l, --level", env="LEVEL")

        os.environ["LEVEL"] = "9"
        args = application().parse(Args, args=["-c", "3"], defaults={
            "n": "short",
            "count": 5,
            "tagged": "ignored",
            "level": "1",
        })
        self.assertEqual(args.name, "short")
        self.assertEqual(args.count, 3)
        self.assertEqual(args.tagged, "tag")
        self.assertEqual(args.level, 9)

        args = application().parse(Args, args=[], defaults={"count": 5})
        self.assertEqual(args.count, 5)

        with self.assertRaisesRegex(ProgrammingError, "invalid default value"):
            application().parse(Args, args=[], defaults={"count": "many"})


class TestParsingFaults(ParsingTestCase):
    """Faults and handling modes."""

    @dataclass
    class Args:
        verbose: bool = cli("-v, --verbose")
        count: int = cli("-c, --count")
        target: str = cli("#R, target, where to")

    def testExitOnError(self):
        app = application()
        with self.assertRaises(SystemExit) as caught:
            app.parse(self.Args, args=["-x", "t"])
        self.assertEqual(caught.exception.code, 2)
        got = app.out.getvalue()
        self.assertIn("flag provided but not defined: -x", got)
        self.assertIn("USAGE:", got)

    def testHelpExitsWithZero(self):
        app = application()
        with self.assertRaises(SystemExit) as caught:
            app.parse(self.Args, args=["-h"])
        self.assertEqual(caught.exception.code, 0)
        self.assertIn("ARGUMENTS:", app.out.getvalue())

    def testPanicRaises(self):
        with self.assertRaises(UnknownFlagError):
            application().parse(self.Args, args=["--nope"], handling=ErrorHandling.PANIC)
        with self.assertRaises(UnknownFlagError):
            application(handling=ErrorHandling.PANIC).parse(self.Args, args=["--nope"])

    def testContinueRecordsFault(self):
        app = application()
        args = app.parse(self.Args, args=["-c", "3"], handling=CONTINUE)
        self.assertIsInstance(app.context.fault, RequiredArgumentError)
        self.assertEqual(str(app.context.fault), "argument is required but not given: target")
        self.assertIs(app.context.flagset.fault, app.context.fault)
        self.assertEqual(args.count, 3)

    def testUnexpectedArguments(self):
        app = application()
        app.parse(self.Args, args=["a", "-v", "b", "c"], handling=CONTINUE)
        self.assertIsInstance(app.context.fault, UnexpectedArgumentsError)
        self.assertEqual(str(app.context.fault), 'unexpected arguments: ["b" "c"]')

    def testLeadingWordsBeyondPositionals(self):
        app = application()
        app.parse(self.Args, args=["a", "b", "-v"], handling=CONTINUE)
        self.assertIsInstance(app.context.fault, InvalidCommandError)
        self.assertIn("'a b' is not a valid command", str(app.context.fault))

    def testInvalidPositionalValue(self):
        @dataclass
        class Args:
            number: int = cli("number")

        app = application()
        app.parse(Args, args=["x"], handling=CONTINUE)
        self.assertEqual(str(app.context.fault), 'invalid value "x" for argument \'number\': parse error')

    def testSecondParseRejected(self):
        app = application()

        def body(ctx):
            ctx.parse(None)
            ctx.parse(None)

        app.add("twice", body)
        with self.assertRaisesRegex(ProgrammingError, "already been parsed"):
            app.run("twice")

    def testRecordMustBeDataclass(self):
        with self.assertRaises(ProgrammingError):
            application().parse(object(), args=[])

    def testUnknownOptionRejected(self):
        with self.assertRaises(TypeError):
            application().parse(None, colour=True)


class TestParsingOptions(ParsingTestCase):
    """Parse options and help rendering of direct parses."""

    def testWithName(self):
        @dataclass
        class Args:
            a: Buffer = cli("-a")
            b: Buffer = cli("-b")

        app = application()
        app.parse(Args, handling=CONTINUE, name="my awesome command", args=["-a", "1234", "-b", "abcd"])
        app.print_help()
        got = app.out.getvalue()
        self.assertIn("my awesome command [flags]\n", got)
        self.assertIn("FLAGS:", got)
        self.assertIn("  -a value", got)
        self.assertIn("  -b value", got)

    def testUsageDocument(self):
        @dataclass
        class Args:
            a1: bool | None = cli("-a1, a1 description")
            a2: bool | None = cli("-a2  a2 description")
            b1: int | None = cli("-b1,   b1 description", default="1024")
            c1: str | None = cli("-c1", env="C1_STR")
            c2: str | None = cli("-c2", default="c2default", env="C2_STR")
            c3: str | None = cli("-c3", default="c3default", env="C3_STR")
            c4: str | None = cli("-c4, a 'c4' value")
            c5: str | None = cli("-c5, c5 description")
            d1: Duration | None = cli("-d1", default="1.5s")

        app = application()
        app.parse(Args, args=["-h"], handling=CONTINUE)
        self.assertEqual(app.out.getvalue(), (
            "USAGE:\n"
            "  prog [flags]\n"
            "\n"
            "FLAGS:\n"
            "  -a1             a1 description\n"
            "  -a2             a2 description\n"
            "  -b1 int         b1 description (default 1024)\n"
            '  -c1 string      (env "C1_STR")\n'
            '  -c2 string      (default c2default) (env "C2_STR")\n'
            '  -c3 string      (default c3default) (env "C3_STR")\n'
            "  -c4 c4          a c4 value\n"
            "  -c5 string      c5 description\n"
            "  -d1 duration    (default 1.5s)\n"
            "\n"
        ))

    def testDisableGlobalFlags(self):
        @dataclass
        class Globals:
            a: str = cli("-a, --global-a, dummy global flag a")

        @dataclass
        class Args:
            b: bool = cli("-b, --cmd-args-b")

        app = application()
        app.set_global_flags(Globals)
        app.parse(Args, args=["-h"], handling=CONTINUE)
        flagset = app.context.flagset
        for name in ("b", "cmd-args-b", "a", "global-a"):
            self.assertIsNotNone(flagset.lookup(name), name)
        self.assertIn("GLOBAL FLAGS:", app.out.getvalue())

        app.parse(Args, args=["-h"], handling=CONTINUE, disable_global_flags=True)
        flagset = app.context.flagset
        self.assertIsNotNone(flagset.lookup("b"))
        self.assertIsNone(flagset.lookup("a"))
        self.assertIsNone(flagset.lookup("global-a"))

    def testGlobalFlagsBound(self):
        @dataclass
        class Globals:
            debug: bool = cli("-d, --debug")

        app = application()
        app.set_global_flags(Globals())
        app.parse(None, args=["--debug"])
        self.assertTrue(app.globals.debug)
        with self.assertRaises(ProgrammingError):
            app.set_global_flags(42)

    def testReplaceUsage(self):
        @dataclass
        class Args:
            a: str = cli("-a, --args-a")
            b: int = cli("-b, --args-b")

        app = application()
        app.add("dummy1", lambda: None, "dummy cmd 1")
        app.parse(Args, handling=CONTINUE, args=[],
                  usage=lambda: "test replace usage custom usage text\nanother line")
        app.print_help()
        got = app.out.getvalue()
        self.assertNotIn("--args-a", got)
        self.assertIn("test replace usage custom usage text\nanother line", got)

    def testFooter(self):
        @dataclass
        class Args:
            a: str = cli("-a, --args-a")
            b: int = cli("-b, --args-b")

        app = application(help_footer="app footer")
        app.add("dummy1", lambda: None, "dummy cmd 1")
        app.parse(Args, handling=CONTINUE, args=[],
                  footer=lambda: "test with footer custom footer text\nanother line")
        app.print_help()
        got = app.out.getvalue()
        self.assertIn("--args-a", got)
        self.assertIn("--args-b", got)
        self.assertIn("test with footer custom footer text\nanother line", got)
        self.assertNotIn("app footer", got)

    def testShowHidden(self):
        def populate(app):
            app.add("cmd1", lambda: None, "A cmd1 description")
            app.add_hidden("cmd2", lambda: None, "A hidden cmd2 description")
            app.add_group("group1", "A group1 description")
            app.add("group1 cmd1", lambda: None, "A group1 cmd1 description")
            app.add("group1 cmd2", lambda: None, "A group1 cmd2 description")
            app.add("group1 cmd3 sub1", lambda: None, "A group1 cmd3 sub1 description")
            app.add_hidden("group1 cmd4", lambda: None, "A group1 cmd4 hidden command")
            return app

        app = populate(application())
        app.parse(None, handling=CONTINUE, name="group1", args=["-mcli-show-hidden"])
        self.assertEqual(app.context.flagset.lookup("mcli-show-hidden").format(), "true")
        app.print_help()
        self.assertIn("group1 cmd4 (HIDDEN)", app.out.getvalue())

        @dataclass
        class Args:
            hidden: str = cli("#H, -a1")

        app = populate(application())
        app.parse(Args, handling=CONTINUE, name="group1 cmd1", args=["-mcli-show-hidden"])
        app.print_help()
        self.assertIn("-a1 string (HIDDEN)", app.out.getvalue())

        app = populate(application())
        app.parse(Args, handling=CONTINUE, name="group1 cmd1", args=[])
        app.print_help()
        self.assertNotIn("-a1", app.out.getvalue())

    def testKeepOrderAppliesToFlags(self):
        @dataclass
        class Args:
            zeta: bool = cli("-z, --zeta, last letter")
            alpha: bool = cli("-a, --alpha, first letter")

        app = application(keep_command_order=True)
        app.parse(Args, args=["-h"], handling=CONTINUE)
        got = app.out.getvalue()
        self.assertLess(got.index("--zeta"), got.index("--alpha"))


if __name__ == "__main__":
    unittest.main()
