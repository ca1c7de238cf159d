import sys

import atheris
from helpers import EnhancedDataProvider

with atheris.instrument_imports():
    from python_mime.mime import Header, Value


def TestOneInput(data: bytes) -> None:
    fdp = EnhancedDataProvider(data)
    if fdp.ConsumeBool():
        Value.parse(fdp.ConsumeRandomString()).render()
    else:
        Header.parse(fdp.ConsumeRandomString()).render()


def main():
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
