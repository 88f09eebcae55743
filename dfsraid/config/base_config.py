"""
Configuration settings for the RAID node.
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# API Server Configuration
API_HOST = os.getenv('RAID_API_HOST', '0.0.0.0')
API_PORT = int(os.getenv('RAID_API_PORT', '8090'))
DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

# Parity Locations
RAID_LOCATION = os.getenv('RAID_LOCATION', '/destraid')
RAIDRS_LOCATION = os.getenv('RAIDRS_LOCATION', '/destraidrs')
RECOVERY_LOCATION = os.getenv('RAID_RECOVERY_LOCATION', '/tmp/raidrecovery')

# Policy Configuration
POLICY_FILE = os.getenv('RAID_POLICY_FILE', None)
RS_PARITY_LENGTH = int(os.getenv('RAID_RS_PARITY_LENGTH', '4'))

# Execution Configuration
EXECUTION_MODE = os.getenv('RAID_EXECUTION_MODE', 'distributed')  # local, distributed
DISTRIBUTED_WORKERS = int(os.getenv('RAID_DISTRIBUTED_WORKERS', '4'))
