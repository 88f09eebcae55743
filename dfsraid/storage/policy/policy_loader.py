"""Loads RAID policies from the XML policy file.

Format::

    <configuration>
      <policy name="abstract">
        <srcPath/>
        <erasureCode>xor</erasureCode>
        <property><name>srcReplication</name><value>3</value></property>
        ...
      </policy>
      <policy name="logs">
        <srcPath prefix="/user/logs"/>
        <parentPolicy>abstract</parentPolicy>
      </policy>
    </configuration>

modTimePeriod is given in milliseconds.
"""
import logging
import os
from typing import List, Optional

import xmltodict

from dfsraid.models import ErasureCodeType, PolicyInfo
from dfsraid.storage.errors import ConfigurationError

logger = logging.getLogger(__name__)

INT_PROPERTIES = {
    'srcReplication': 'src_replication',
    'targetReplication': 'target_replication',
    'metaReplication': 'meta_replication',
    'stripeLength': 'stripe_length',
}


def _as_list(value) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _text(value) -> Optional[str]:
    # <fileList>/x</fileList> parses to a string, <fileList/> to None
    if isinstance(value, dict):
        value = value.get('#text')
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_policy(element: dict) -> PolicyInfo:
    if not isinstance(element, dict):
        raise ConfigurationError("Policy without a name")
    name = element.get('@name', '').strip()
    if not name:
        raise ConfigurationError("Policy without a name")
    policy = PolicyInfo(name=name)

    src_path = element.get('srcPath')
    if isinstance(src_path, dict):
        prefix = src_path.get('@prefix', '').strip()
        policy.src_path = prefix or None
    policy.file_list_path = _text(element.get('fileList'))
    policy.parent = _text(element.get('parentPolicy'))

    code = _text(element.get('erasureCode'))
    if code is not None:
        try:
            policy.erasure_code = ErasureCodeType.parse(code)
        except ValueError as e:
            raise ConfigurationError(str(e), policy_name=name)

    for prop in _as_list(element.get('property')):
        prop_name = _text(prop.get('name')) if isinstance(prop, dict) else None
        prop_value = _text(prop.get('value')) if isinstance(prop, dict) else None
        if prop_name is None or prop_value is None:
            raise ConfigurationError(f"Malformed property in policy {name}", policy_name=name)
        try:
            if prop_name in INT_PROPERTIES:
                setattr(policy, INT_PROPERTIES[prop_name], int(prop_value))
            elif prop_name == 'modTimePeriod':
                policy.mod_time_period = int(prop_value) / 1000.0
            else:
                logger.warning(f"Ignoring unknown property {prop_name} in policy {name}")
        except ValueError:
            raise ConfigurationError(
                f"Property {prop_name} of policy {name} is not a number: {prop_value}",
                policy_name=name
            )
    return policy


def parse_policies(xml_text: str) -> List[PolicyInfo]:
    """Parse the policy XML document into raw policies, in file order.

    Raises:
        ConfigurationError: If the document or a policy is malformed
    """
    try:
        data = xmltodict.parse(xml_text)
    except Exception as e:
        raise ConfigurationError(f"Invalid policy XML: {str(e)}")

    if not isinstance(data, dict) or 'configuration' not in data:
        raise ConfigurationError("Policy XML must have a <configuration> root")
    root = data['configuration']
    if not isinstance(root, dict):
        return []
    return [_parse_policy(element) for element in _as_list(root.get('policy'))]


class PolicyLoader:
    """Reads the policy file and re-reads it when it changes on disk."""

    def __init__(self, policy_file: Optional[str] = None,
                 policies: Optional[List[PolicyInfo]] = None):
        """Initialize the loader.

        Args:
            policy_file: Path of the XML policy file on the local disk
            policies: Fixed policies to serve when no file is configured
        """
        self.policy_file = policy_file
        self._policies: List[PolicyInfo] = list(policies or [])
        self._last_mtime: Optional[float] = None

    def reload_if_changed(self) -> bool:
        """Re-read the policy file if its modification time changed.

        A file that fails to parse leaves the previous policies in place.

        Returns:
            bool: True if new policies were loaded
        """
        if not self.policy_file:
            return False
        try:
            mtime = os.path.getmtime(self.policy_file)
        except OSError as e:
            logger.error(f"Cannot stat policy file {self.policy_file}: {str(e)}")
            return False
        if mtime == self._last_mtime:
            return False

        try:
            with open(self.policy_file, 'r') as f:
                policies = parse_policies(f.read())
        except (OSError, ConfigurationError) as e:
            logger.error(f"Failed to load policy file {self.policy_file}: {str(e)}")
            return False

        self._policies = policies
        self._last_mtime = mtime
        logger.info(f"Loaded {len(policies)} policies from {self.policy_file}")
        return True

    def get_policies(self) -> List[PolicyInfo]:
        """Current raw policies, re-reading the file first if it changed."""
        self.reload_if_changed()
        return list(self._policies)

    def set_policies(self, policies: List[PolicyInfo]) -> None:
        self._policies = list(policies)
