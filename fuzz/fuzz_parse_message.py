import sys

import atheris
from helpers import EnhancedDataProvider

with atheris.instrument_imports():
    from python_mime.exceptions import DecodeError
    from python_mime.mime import Message


def fuzz_parse_message(fdp: EnhancedDataProvider) -> None:
    message = Message.parse_message(fdp.ConsumeRandomBytes())
    for attachment in message.get_attachments():
        attachment.get_contents()


def fuzz_parse_form(fdp: EnhancedDataProvider) -> None:
    boundary = "boundary"
    body = fdp.ConsumeLatin1()
    Message.parse_form(f"Content-Type: multipart/form-data; boundary={boundary}\r\n\r\n{body}")


def TestOneInput(data: bytes) -> None:
    fdp = EnhancedDataProvider(data)
    targets = [fuzz_parse_message, fuzz_parse_form]
    target = fdp.PickValueInList(targets)

    # Parsing itself never raises; only decoding a declared base64 body can.
    try:
        target(fdp)
    except DecodeError:
        return


def main():
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
