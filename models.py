from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TAG = "latest"
ANY_PORT = ""  # host port sentinel: let the OS pick a free port


class ContainerState(str, Enum):
    UNSTARTED = "unstarted"
    RUNNING = "running"
    STOPPED = "stopped"
    REMOVED = "removed"


class CollisionPolicy(str, Enum):
    """What Start does when a container with the requested name already exists"""

    DESTROY = "destroy"
    FAIL = "fail"


class StopTimeoutPolicy(str, Enum):
    """How a graceful stop error that arrives after its own deadline is treated"""

    SUPPRESS_LATE_ERRORS = "suppress_late_errors"
    PROPAGATE = "propagate"


class ContainerConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    image: str
    name: Optional[str] = None
    tag: str = DEFAULT_TAG
    env: Dict[str, str] = Field(default_factory=dict)
    # e.g. {"5432": ""} for any free host port or {"80/tcp": "8080"} for a fixed one
    ports: Dict[str, str] = Field(default_factory=dict)

    @field_validator("image")
    @classmethod
    def image_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("image must not be blank")
        return value

    @field_validator("name", mode="before")
    @classmethod
    def blank_name_is_none(cls, value):
        return value or None

    @field_validator("tag", mode="before")
    @classmethod
    def default_tag(cls, value):
        return value or DEFAULT_TAG

    @field_validator("ports")
    @classmethod
    def port_keys_not_blank(cls, value: Dict[str, str]) -> Dict[str, str]:
        for container_port in value:
            if not container_port.strip():
                raise ValueError("container port must not be blank")
        return value

    @property
    def image_ref(self) -> str:
        return f"{self.image}:{self.tag}"

    def env_list(self):
        """Environment in the NAME=value form the engine expects"""
        return [f"{key}={value}" for key, value in self.env.items()]
