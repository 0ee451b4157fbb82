"""Reading, rendering and parsing CloudFormation templates."""

import json
import logging
import re
from pathlib import Path
from urllib.parse import urlparse

import boto3
import jinja2
import requests
import yaml

from stackpilot.errors import TemplateError

logger = logging.getLogger(__name__)

JINJA_DIRECTIVE = re.compile(r"{{|{%|{#")


class TemplateReader:
    """Reads raw template bodies from file, S3 and HTTP(S) URIs.

    A value without a scheme is treated as a filesystem path.
    """

    def __init__(self, session: boto3.Session | None = None, timeout: int = 30):
        self._session = session
        self._timeout = timeout

    def read(self, uri: str) -> str:
        parsed = urlparse(uri)
        scheme = parsed.scheme.lower()

        if scheme == "file":
            return self._read_file(uri[len("file://") :])
        if scheme == "s3":
            return self._read_s3(parsed.netloc, parsed.path.lstrip("/"))
        if scheme in ("http", "https"):
            return self._read_http(uri)
        # single letters are Windows drive letters, not schemes
        if scheme == "" or len(scheme) == 1:
            return self._read_file(uri)
        raise TemplateError(f"unsupported template URI scheme {scheme!r} in {uri}")

    def _read_file(self, path: str) -> str:
        try:
            return Path(path).read_text(encoding="utf-8")
        except OSError as err:
            raise TemplateError(f"failed to read template file {path}: {err}") from err

    def _read_s3(self, bucket: str, key: str) -> str:
        if not bucket or not key:
            raise TemplateError(f"invalid S3 template URI s3://{bucket}/{key}")
        session = self._session or boto3.Session()
        logger.debug("Downloading template s3://%s/%s", bucket, key)
        resp = session.client("s3").get_object(Bucket=bucket, Key=key)
        return resp["Body"].read().decode("utf-8")

    def _read_http(self, url: str) -> str:
        logger.debug("Downloading template %s", url)
        response = requests.get(url, timeout=self._timeout)
        response.raise_for_status()
        return response.text


class TemplateProcessor:
    """Renders Jinja2 expressions in template bodies.

    Bodies without any Jinja2 directive are returned unchanged.
    """

    def __init__(self):
        self._env = jinja2.Environment(
            undefined=jinja2.StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def process(self, raw_template: str, variables: dict) -> str:
        if not JINJA_DIRECTIVE.search(raw_template):
            return raw_template
        try:
            return self._env.from_string(raw_template).render(**variables)
        except jinja2.TemplateError as err:
            raise TemplateError(f"failed to render template: {err}") from err


class CloudFormationLoader(yaml.SafeLoader):
    """YAML loader that understands CloudFormation short-form intrinsics."""


def _construct_intrinsic(loader, tag_suffix, node):
    name = "Ref" if tag_suffix == "Ref" else f"Fn::{tag_suffix}"
    if name == "Fn::Condition":
        name = "Condition"

    if isinstance(node, yaml.ScalarNode):
        value = loader.construct_scalar(node)
        if name == "Fn::GetAtt":
            value = value.split(".", 1)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)
    return {name: value}


CloudFormationLoader.add_multi_constructor("!", _construct_intrinsic)


def _no_dates(loader, node):
    return loader.construct_scalar(node)


# CloudFormation treats dates such as AWSTemplateFormatVersion as strings
CloudFormationLoader.add_constructor("tag:yaml.org,2002:timestamp", _no_dates)


def load_template(body: str) -> dict:
    """Parse a JSON or YAML template body into plain Python data."""
    try:
        data = json.loads(body)
    except ValueError:
        try:
            data = yaml.load(body, Loader=CloudFormationLoader)
        except yaml.YAMLError as err:
            raise TemplateError(f"failed to parse template: {err}") from err

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise TemplateError("template must be a mapping at the top level")
    return data


def dump_template(data: dict) -> str:
    """Serialise parsed template data in a stable, diff-friendly form."""
    return yaml.safe_dump(data, sort_keys=True, default_flow_style=False, width=100)
