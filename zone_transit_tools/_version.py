#
# _version.py: zone_transit_tools package version
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#

__version_info__ = (0, 1, 0)
__version__ = ".".join(str(c) for c in __version_info__)
