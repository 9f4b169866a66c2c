"""
IaC preview generator.
Renders a read-only Terraform preview for the selected modules. The output is
never executed; it is a deterministic function of its inputs.
"""
from typing import Dict, Iterable, List, Optional
import math

from provisioner.catalog.module_catalog import ModuleCatalog, get_module_catalog
from provisioner.domain.errors import ModuleNotFoundError
from provisioner.domain.module_models import ModuleConfig, ModuleDescriptor
from provisioner.domain.providers import Provider
from provisioner.providers.base import ProviderCapability, REDACTED
from provisioner.providers.registry import get_provider_capability


# Secret values shorter than this are not scrubbed from free text
_MIN_SCRUB_LENGTH = 4


def _render_ec2(descriptor: ModuleDescriptor, module_config: ModuleConfig, config_by_module: Dict[str, ModuleConfig]) -> str:
    lines = [
        f"resource \"aws_instance\" \"{module_config.get('name') or descriptor.id}\" {{",
        f"  instance_type = \"{module_config.get('instanceType') or 't2.micro'}\"",
    ]
    if module_config.get("amiId"):
        lines.append(f"  ami = \"{module_config['amiId']}\"")
    vpc_id = module_config.get("vpcId")
    if vpc_id == "default":
        lines.append("  # Uses default VPC")
    elif vpc_id == "use-selected-vpc":
        vpc_name = (config_by_module.get("vpc") or {}).get("name") or "main"
        lines.append(f"  subnet_id = aws_subnet.{vpc_name}.id")
    lines.append("}")
    return "\n".join(lines) + "\n"


def _render_s3(descriptor: ModuleDescriptor, module_config: ModuleConfig, config_by_module: Dict[str, ModuleConfig]) -> str:
    bucket = module_config.get("name") or "my-bucket"
    return (
        f"resource \"aws_s3_bucket\" \"{bucket}\" {{\n"
        f"  bucket = \"{bucket}\"\n"
        "  force_destroy = true\n"
        "}\n"
    )


def _render_vpc(descriptor: ModuleDescriptor, module_config: ModuleConfig, config_by_module: Dict[str, ModuleConfig]) -> str:
    cidr = module_config.get("cidrBlock") or "10.0.0.0/16"
    try:
        subnet_count = int(module_config.get("subnetCount") or 2)
    except (TypeError, ValueError):
        subnet_count = 2
    half = math.ceil(max(subnet_count, 0) / 2)
    public_subnets = [f"\"10.0.{i + 1}.0/24\"" for i in range(half)]
    private_subnets = [f"\"10.0.{i + 1 + half}.0/24\"" for i in range(half)]
    return (
        "module \"vpc\" {\n"
        f"  name             = \"{module_config.get('name') or 'main'}\"\n"
        f"  vpc_cidr         = \"{cidr}\"\n"
        f"  public_subnets   = [{', '.join(public_subnets)}]\n"
        f"  private_subnets  = [{', '.join(private_subnets)}]\n"
        "}\n"
    )


def _render_generic(descriptor: ModuleDescriptor, module_config: ModuleConfig, config_by_module: Dict[str, ModuleConfig]) -> str:
    name = module_config.get("name") or descriptor.id
    return "".join(
        f"resource \"{resource_type}\" \"{name}\" {{\n"
        f"  # Configuration for {descriptor.id}\n"
        "}\n"
        for resource_type in descriptor.iac_resources
    )


TEMPLATES = {
    (Provider.AWS, "ec2"): _render_ec2,
    (Provider.AWS, "s3"): _render_s3,
    (Provider.AWS, "vpc"): _render_vpc,
}


def _scrub_secrets(text: str, secrets: Iterable[str]) -> str:
    for secret in sorted({s for s in secrets if s and len(s) >= _MIN_SCRUB_LENGTH}, key=len, reverse=True):
        text = text.replace(secret, REDACTED)
    return text


class IaCGenerator:
    """Renders Terraform previews for the selected modules."""

    def __init__(self, catalog: Optional[ModuleCatalog] = None):
        self.catalog = catalog or get_module_catalog()

    def generate(
        self,
        provider: Optional[Provider],
        region: str,
        credentials_placeholder: Optional[Dict[str, str]],
        selected_modules: Iterable[str],
        config_by_module: Dict[str, ModuleConfig],
        capability: Optional[ProviderCapability] = None
    ) -> str:
        """
        Render the IaC preview.

        Args:
            provider: Active provider (None yields an empty preview)
            region: Active region
            credentials_placeholder: Credential values; secret fields are
                always rendered as the redaction token
            selected_modules: Selected module ids, rendered in the given order
            config_by_module: Configuration keyed by module id
            capability: Provider capability (looked up when omitted)

        Returns:
            Terraform text, or "" when no provider or no module is selected
        """
        module_ids = list(dict.fromkeys(selected_modules))
        parsed = Provider.parse(provider)
        if parsed is None or not module_ids:
            return ""

        capability = capability or get_provider_capability(parsed)
        credentials = dict(credentials_placeholder or {})
        sections: List[str] = [capability.render_iac_header(region, credentials)]

        for module_id in module_ids:
            try:
                descriptor = self.catalog.lookup(parsed, module_id)
            except ModuleNotFoundError:
                continue
            module_config = config_by_module.get(module_id) or {}
            render = TEMPLATES.get((parsed, module_id), _render_generic)
            sections.append(f"# {descriptor.name} Resources\n" + render(descriptor, module_config, config_by_module))

        secrets = [str(credentials.get(name) or "") for name in capability.secret_fields]
        return _scrub_secrets("\n".join(sections), secrets)


def generate(
    provider: Optional[Provider],
    region: str,
    credentials_placeholder: Optional[Dict[str, str]],
    selected_modules: Iterable[str],
    config_by_module: Dict[str, ModuleConfig]
) -> str:
    """Render the IaC preview with the global catalog."""
    return IaCGenerator().generate(
        provider, region, credentials_placeholder, selected_modules, config_by_module
    )
