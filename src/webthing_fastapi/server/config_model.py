r"""Pydantic models to enable server configuration to be loaded from file.

The models in this module describe the full server configuration with
`.ThingServerConfig`\ . They are used by the `.cli` module to start servers
based on configuration files or strings, e.g.

.. code-block:: json

    {
        "things": ["webthing_fastapi.example_things:make_lamp"],
        "base_path": "/lamp"
    }
"""

from importlib import import_module
import re
from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    ImportString,
    ValidatorFunctionWrapHandler,
    WrapValidator,
    field_validator,
)
from typing import Any, Annotated, Optional, TypeAlias
from collections.abc import Mapping, Sequence

PYTHON_EL_RE_STR = r"[a-zA-Z_][a-zA-Z0-9_]*"
IMPORT_REGEX = re.compile(
    rf"^{PYTHON_EL_RE_STR}(?:\.{PYTHON_EL_RE_STR})*:{PYTHON_EL_RE_STR}$"
)


class ThingImportFailure(BaseException):
    """Failed to import Thing. Raise with import traceback."""


def contain_import_errors(value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
    """Prevent errors during import from causing odd validation errors.

    This is used to wrap the pydantic ImportString validator, and ensures that any
    module that won't import shows up with a single clear error.

    :param value: The value being validated.
    :param handler: The validator handler.

    :return: The validated value.

    :raises ThingImportFailure: if an import error occurs, with the stack trace from
        retrying the import.
    """
    try:
        return handler(value)
    except Exception:
        if isinstance(value, str) and IMPORT_REGEX.match(value):
            module_name, thing_name = value.split(":")
            try:
                module = import_module(module_name)
            except Exception as import_err:  # noqa: BLE001
                msg = f"[{type(import_err).__name__}] {import_err}"
                exc = ThingImportFailure(msg)
                # Raise from None so the traceback is just the clear import traceback.
                raise exc.with_traceback(import_err.__traceback__) from None

            if not hasattr(module, thing_name):
                msg = (
                    f"[ImportError] cannot import name '{thing_name}' from "
                    f"'{module_name}'"
                )
                raise ThingImportFailure(msg) from None

        # Wrong type, didn't match the regex, or imported fine on the retry.
        raise


ThingImportString = Annotated[
    ImportString,
    WrapValidator(contain_import_errors),
]


class ThingConfig(BaseModel):
    r"""The information needed to create a `.Thing` for a `.ThingServer`\ ."""

    cls: ThingImportString = Field(
        validation_alias=AliasChoices("cls", "class"),
        description=(
            "A Thing instance, a Thing subclass, or a function that returns "
            "a Thing."
        ),
    )

    args: Sequence[Any] = Field(
        default_factory=list,
        description="Positional arguments to pass to `cls`, if it is called.",
    )

    kwargs: Mapping[str, Any] = Field(
        default_factory=dict,
        description="Keyword arguments to pass to `cls`, if it is called.",
    )


ThingsConfig: TypeAlias = Sequence[ThingConfig | ThingImportString]


class ThingServerConfig(BaseModel):
    r"""The configuration parameters for a `.ThingServer`\ ."""

    things: ThingsConfig = Field(
        min_length=1,
        description=(
            """A list of Thing configurations.

            Each value is either an import string (``module:name``), or a
            `.ThingConfig` object specifying the object to import and the
            arguments to call it with. If there is more than one Thing, each
            is served at its index in this list.
            """
        ),
    )

    @field_validator("things", mode="after")
    @classmethod
    def check_things(cls, things: ThingsConfig) -> ThingsConfig:
        """Check that the thing configurations can be normalised.

        We use `pydantic.ImportString` as the type of the Things: this takes a
        string, and imports the corresponding Python object. When loading config
        from JSON, this does the right thing - but when loading from Python objects
        it will accept any Python object.

        This validator runs `.normalise_things_config` to convert each value to
        a `.ThingConfig`. We don't check for `.Thing` instances in this module to
        avoid a dependency loop: that happens in `.ThingServer.from_config`.

        :param things: The validated value of the field.

        :return: A copy of the input, with all values converted to `.ThingConfig`
            instances.
        """
        return normalise_things_config(things)

    @property
    def thing_configs(self) -> Sequence[ThingConfig]:
        r"""A copy of the ``things`` field where every value is a ``.ThingConfig``\ .

        The field validator on ``things`` already converts every value, but
        the field is not typed strictly, to allow Things to be specified with
        just an import string.
        """
        return normalise_things_config(self.things)

    name: str = Field(
        default="WebThing server",
        description="The name of the server, used when serving several Things.",
    )

    base_path: str = Field(
        default="",
        pattern=r"^(/[a-zA-Z0-9\-_]+)*/?$",
        description="A prefix for every path on the server, e.g. ``/things``.",
    )

    allowed_hosts: Optional[list[str]] = Field(
        default=None,
        description=(
            "If set, only requests whose ``Host`` header matches one of these "
            "are accepted. Wildcards like ``*.example.com`` are allowed."
        ),
    )


def normalise_things_config(things: ThingsConfig) -> list[ThingConfig]:
    r"""Ensure every Thing is defined by a `.ThingConfig` object.

    Things may be specified either using a `.ThingConfig` object, or just an
    imported object, if no arguments are needed. To simplify code that uses
    the configuration, this function wraps bare objects in a `.ThingConfig` so
    the values are uniformly typed.

    :param things: A list of Things, either imported objects or `.ThingConfig`
        objects.

    :return: A list of `.ThingConfig` objects.
    """
    normalised: list[ThingConfig] = []
    for v in things:
        if isinstance(v, ThingConfig):
            normalised.append(v)
        elif isinstance(v, Mapping):
            normalised.append(ThingConfig.model_validate(v))
        else:
            normalised.append(ThingConfig(cls=v))
    return normalised
