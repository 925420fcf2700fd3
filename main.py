import asyncio
import sys
from typing import Annotated, TextIO

from commandeer import *
from commandeer.logs import configure

__prog__ = "demo"
__version__ = "0.1.0"


def parse_float(name, type, token):
    # Accept both decimal separators.
    return type(token.replace(",", "."))


class EchoOptions(Arguments):
    message: Annotated[str, Argument(descr="text to print")]
    upper: Annotated[bool, Argument(descr="print in upper case")] = False


@api("demo", default=True, title="Demo API", descr="Commands showing off the binding rules.")
class DemoApi:

    @method(default=True, descr="Print a message.")
    @exit_code(123, "the message was printed")
    def echo(self, message: Annotated[str, Argument(example="hello")]):
        print(message)
        return 123

    @method(descr="Print a message, arguments taken from a holder object.")
    @exit_code(213, "the message was printed")
    def echo2(self, options: EchoOptions):
        print(options.message.upper() if options.upper else options.message)
        return 213

    @method(descr="Print stdin.", stdin="text to print", stdin_required=True, stdout="the text from stdin")
    def echo3(self):
        print(sys.stdin.read(), end="")

    @method(descr="Sum up the keyless numbers and print the result.")
    def sum(self, numbers: Annotated[list[str], Argument(0)]):
        print(sum(int(number) for number in numbers))

    @method(descr="Sum up integers and return the sum as exit code.")
    def sum2(self, integers: Annotated[list[int], Argument(json=True, example="1")]):
        return sum(integers)

    @staticmethod
    @method("exit", descr="Exit with code -123.")
    @exit_code(-123, "always")
    def exit_():
        return -123

    @method(descr="Raise an exception.")
    def error(self):
        raise RuntimeError("this command always fails")

    @method(descr="Print a float parsed by a custom parser.")
    def custom(self, number: Annotated[float, Argument(parser=parse_float, example="0.5")]):
        print(number)

    @method(descr="Wait asynchronously.")
    async def wait(self, seconds: Annotated[float, Argument(json=True)] = 0.1):
        await asyncio.sleep(seconds)

    @method(descr="Print a text file.", stdout="the file contents", stderr="an error when the file cannot be opened")
    def cat(self, file: Annotated[TextIO, Argument(0, parser=FileStream(encoding="utf-8"), example="notes.txt")]):
        with file:
            print(file.read(), end="")


if __name__ == "__main__":
    configure("warning")
    AboutApi.info = "A demo of the commandeer command-line API framework."
    sys.exit(invoke(None, DemoApi, HelpApi, VersionApi, AboutApi))
