# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_kcc

"""
Interactive command line dialogue for registering blueprints and pushing realm configurations.

The dialogue only builds BlueprintDescriptor and RealmConfiguration values and hands them to ConfigClient.
"""

import argparse
import getpass
from collections.abc import Callable, Sequence
from pathlib import Path

from pydantic import SecretStr, ValidationError

from coreason_kcc.client import ConfigClient
from coreason_kcc.config import KccSettings
from coreason_kcc.exceptions import CoreasonKccError
from coreason_kcc.loader import load_blueprint, load_realm_configuration
from coreason_kcc.models import BlueprintDescriptor, RealmConfiguration, UserCredential
from coreason_kcc.utils.logger import configure_logging, logger

YES_ANSWERS = frozenset({"y", "Y", "yes", "YES"})

MAIN_MENU = [
    "Create a new Blueprint Realm",
    "Create or Update a Realm Config",
    "quit",
]


class Prompter:
    """
    Asks the operator questions on the terminal.

    Attributes:
        read (Callable[[str], str]): Reads a line of input after showing a prompt.
        read_secret (Callable[[str], str]): Reads a line without echoing it (passwords).
        write (Callable[[str], None]): Shows a line of output.
    """

    def __init__(
        self,
        read: Callable[[str], str] = input,
        read_secret: Callable[[str], str] = getpass.getpass,
        write: Callable[[str], None] = print,
    ) -> None:
        self.read = read
        self.read_secret = read_secret
        self.write = write

    def ask_yes_no(self, question: str) -> bool:
        return self.read(f"{question} [y/n] ").strip() in YES_ANSWERS

    def ask_string(self, question: str, validate: Callable[[str], bool] | None = None) -> str:
        """Asks until the answer is non-empty and passes `validate`."""
        while True:
            answer = self.read(f"{question} ").strip()
            if answer and (validate is None or validate(answer)):
                return answer
            self.write("Invalid answer, please try again.")

    def ask_secret(self, question: str) -> str:
        while True:
            answer = self.read_secret(f"{question} ")
            if answer:
                return answer
            self.write("Invalid answer, please try again.")

    def menu(self, question: str, options: Sequence[str]) -> int:
        """Shows numbered options and returns the index of the selected one."""
        selector = "\n".join(f"\t{i}: {option}" for i, option in enumerate(options))
        while True:
            answer = self.read(f"{question}:\n{selector}\n").strip()
            if answer.isdigit() and int(answer) < len(options):
                return int(answer)
            self.write("Wrong Selection, please try again.")


def _is_file(path: str) -> bool:
    return Path(path).is_file()


def prompt_blueprint(prompter: Prompter) -> BlueprintDescriptor:
    """Builds a blueprint descriptor from a file or from operator answers."""
    if prompter.ask_yes_no("Load a Blueprint Config from a file?"):
        path = prompter.ask_string("Enter the path to the file you want to load:", _is_file)
        return load_blueprint(path)

    return BlueprintDescriptor(
        blueprint_id=prompter.ask_string("What is the BlueprintID?"),
        client_id=prompter.ask_string("What is the clientID?"),
        default_redirect_uri=prompter.read("What is the default redirect URI? (optional) ").strip(),
    )


def prompt_realm_configuration(prompter: Prompter, blueprint_id: str) -> RealmConfiguration:
    """Builds a realm configuration from a file or from operator answers."""
    if prompter.ask_yes_no("Load a User Config from a file?"):
        path = prompter.ask_string("Enter the path to the file you want to load:", _is_file)
        return load_realm_configuration(path, blueprint_id=blueprint_id)

    roles: list[str] = []
    while True:
        roles.append(prompter.ask_string("Enter a role name used by your VDC"))
        if not prompter.ask_yes_no("Add another role?"):
            break

    users: list[UserCredential] = []
    while True:
        username = prompter.ask_string("Enter a username")
        password = prompter.ask_secret("Enter a password")
        user_roles: list[str] = []
        while True:
            selected = roles[prompter.menu(f"Select role for {username}", roles)]
            if selected not in user_roles:
                user_roles.append(selected)
            if not prompter.ask_yes_no("Add another role?"):
                break
        users.append(UserCredential(username=username, password=SecretStr(password), roles=tuple(user_roles)))
        if not prompter.ask_yes_no("Add another user?"):
            break

    return RealmConfiguration(blueprint_id=blueprint_id, roles=tuple(roles), users=tuple(users))


def describe_blueprint(descriptor: BlueprintDescriptor) -> str:
    return (
        f"BlueprintID: {descriptor.blueprint_id}\n"
        f"ClientID: {descriptor.client_id}\n"
        f"Default redirect URI: {descriptor.default_redirect_uri or '-'}"
    )


def describe_config(config: RealmConfiguration) -> str:
    """Summarizes a configuration for confirmation. Passwords are never shown."""
    lines = [f"BlueprintID: {config.blueprint_id}", f"Roles: {', '.join(config.roles) or '-'}", "Users:"]
    lines.extend(f"\t{user.username} ({', '.join(user.roles) or 'no roles'})" for user in config.users)
    return "\n".join(lines)


class Session:
    """Remembers the blueprint of the current dialogue between menu selections."""

    def __init__(self) -> None:
        self.blueprint_id: str | None = None


def blueprint_command(client: ConfigClient, prompter: Prompter, session: Session) -> None:
    if not prompter.ask_yes_no("Do you want to initialize a new Blueprint?"):
        return

    descriptor = prompt_blueprint(prompter)
    session.blueprint_id = descriptor.blueprint_id
    if prompter.ask_yes_no(f"Do you want to commit this blueprint?\n{describe_blueprint(descriptor)}\n"):
        response = client.send_blueprint(descriptor)
        prompter.write(f"Blueprint registered. {response}".rstrip())


def config_command(client: ConfigClient, prompter: Prompter, session: Session) -> None:
    if not prompter.ask_yes_no("Do you want to create/update a Config?"):
        return

    if session.blueprint_id is None:
        session.blueprint_id = prompter.ask_string("What is the BlueprintID?")

    config = prompt_realm_configuration(prompter, session.blueprint_id)
    undeclared = config.undeclared_roles()
    if undeclared:
        prompter.write(f"Warning: users reference undeclared roles: {', '.join(sorted(undeclared))}")

    if prompter.ask_yes_no(f"Do you want to commit this config?\n{describe_config(config)}\n"):
        delivered = client.send_config(config)
        prompter.write(f"Config delivered in {delivered} message(s).")


def run_dialogue(client: ConfigClient, prompter: Prompter) -> None:
    """Runs the main menu until the operator quits."""
    session = Session()
    commands = {0: blueprint_command, 1: config_command}

    while True:
        choice = prompter.menu("What do you want to do?", MAIN_MENU)
        if choice == len(MAIN_MENU) - 1:
            prompter.write("Bye.")
            return
        try:
            commands[choice](client, prompter, session)
        except (CoreasonKccError, OSError) as e:
            logger.error(f"{MAIN_MENU[choice]} failed: {e}")
            prompter.write(f"Failed: {e}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kcc",
        description="Register blueprints and push encrypted realm configurations to a keycloak-config service.",
    )
    parser.add_argument("--address", default=None, help="keycloak-config API address")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--unsecured", action="store_true", help="Trust all TLS certificates")
    return parser


def main(argv: Sequence[str] | None = None, prompter: Prompter | None = None) -> int:
    """
    Entry point of the `kcc` command.

    Returns:
        int: The process exit status.
    """
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else None)
    prompter = prompter or Prompter()

    try:
        endpoint = args.address or prompter.ask_string("What is the keycloak-config endpoint you want to use?")
        overrides = {"insecure_skip_verify": True} if args.unsecured else {}
        try:
            settings = KccSettings(endpoint=endpoint, **overrides)
        except ValidationError as e:
            prompter.write(f"Invalid configuration: {e}")
            return 2

        try:
            client = ConfigClient.connect(settings=settings)
        except CoreasonKccError as e:
            logger.error(f"Failed to create client: {e}")
            prompter.write("Could not create client.")
            return 1

        with client:
            run_dialogue(client, prompter)
    except (EOFError, KeyboardInterrupt):
        prompter.write("Bye.")
    return 0
