"""
AWS region code to Price List API attributes.
The Price List API filters on human-readable locations and on usage types that
carry a short region prefix (e.g. 'USW2-NatGateway-Hours').
"""
from typing import Dict, Optional, Tuple


# region code -> (Price List location, usage type prefix)
AWS_REGION_PRICING: Dict[str, Tuple[str, str]] = {
    # US
    "us-east-1": ("US East (N. Virginia)", ""),
    "us-east-2": ("US East (Ohio)", "USE2-"),
    "us-west-1": ("US West (N. California)", "USW1-"),
    "us-west-2": ("US West (Oregon)", "USW2-"),

    # Asia Pacific
    "ap-south-1": ("Asia Pacific (Mumbai)", "APS3-"),
    "ap-southeast-1": ("Asia Pacific (Singapore)", "APS1-"),
    "ap-southeast-2": ("Asia Pacific (Sydney)", "APS2-"),
    "ap-northeast-1": ("Asia Pacific (Tokyo)", "APN1-"),
    "ap-northeast-2": ("Asia Pacific (Seoul)", "APN2-"),

    # Europe
    "eu-west-1": ("EU (Ireland)", "EU-"),
    "eu-west-2": ("EU (London)", "EUW2-"),
    "eu-central-1": ("EU (Frankfurt)", "EUC1-"),
    "eu-north-1": ("EU (Stockholm)", "EUN1-"),

    # Other
    "ca-central-1": ("Canada (Central)", "CAN1-"),
    "sa-east-1": ("South America (Sao Paulo)", "SAE1-"),
}


def get_aws_pricing_location(region_code: str) -> Optional[str]:
    """
    Get the Price List location string for a region code.

    Args:
        region_code: AWS region code (e.g., 'eu-central-1')

    Returns:
        Location string (e.g., 'EU (Frankfurt)'), or None if the region is unknown
    """
    entry = AWS_REGION_PRICING.get(region_code)
    return entry[0] if entry else None


def get_aws_usage_type(region_code: str, usage: str) -> Optional[str]:
    """
    Build a region-qualified Price List usage type.

    Args:
        region_code: AWS region code
        usage: Usage suffix such as 'NatGateway-Hours'

    Returns:
        Usage type such as 'EUC1-NatGateway-Hours', or None if the region is unknown
    """
    entry = AWS_REGION_PRICING.get(region_code)
    if entry is None:
        return None
    return f"{entry[1]}{usage}"
