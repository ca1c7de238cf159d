import os
import re

from invoke import run, task

version_file = os.path.join("python_mime", "_version.py")
version_regex = re.compile(r"((?:\d+)\.(?:\d+)\.(?:\d+))")


@task
def test(ctx, all=False):
    test_cmd = [
        "pytest",  # Test command
        "--cov-report term-missing",  # Print only uncovered lines to stdout
        "--cov python_mime",  # Test only this package
        "--timeout=30",  # Each test should timeout after 30 sec
    ]

    # Test in this directory
    test_cmd.append("tests")

    run(" ".join(test_cmd), pty=False)


@task
def fuzz(ctx, target="parse_message", runs=100000):
    run(f"python fuzz/fuzz_{target}.py -runs={runs}", pty=False)


@task
def version(ctx):
    with open(version_file) as f:
        print(version_regex.search(f.read()).group(0))
