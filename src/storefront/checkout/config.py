"""Config module."""
from pathlib import Path

from ruamel.yaml import YAML
from storefront.checkout.models.config import Config
from storefront.checkout.models.instructions import InstructionConfig
from storefront.checkout.serialization import get_config_converter

yaml = YAML(typ="safe")


def load_config(path: Path) -> Config:
    """Load the main configuration."""
    doc = yaml.load(path)
    config = get_config_converter().structure(doc, Config)
    return config


def load_instruction_config(path: Path) -> InstructionConfig:
    """Load the payment instruction catalog from a JSON or YAML file."""
    doc = yaml.load(path)
    return get_config_converter().structure(doc, InstructionConfig)
