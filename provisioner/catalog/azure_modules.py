"""
Azure module catalog table.
Requirements that name another module id in this table are module dependencies.
"""
from typing import Any, Dict, List


AZURE_MODULES: List[Dict[str, Any]] = [
    {
        "id": "vnet",
        "name": "Virtual Network",
        "category": "networking",
        "price": {"vnet": 0.01},
        "description": "Isolated network for Azure resources with subnets and security groups.",
        "requirements": ["Subscription", "Region"],
        "iac_resources": ["azurerm_resource_group", "azurerm_virtual_network", "azurerm_subnet"],
    },
    {
        "id": "vpn",
        "name": "VPN Gateway",
        "category": "networking",
        "price": {"gateway": 0.56},
        "description": "Site-to-site and point-to-site connectivity into a virtual network.",
        "requirements": ["vnet"],
        "iac_resources": ["azurerm_virtual_network_gateway", "azurerm_public_ip"],
    },
    {
        "id": "dns",
        "name": "Azure DNS",
        "category": "networking",
        "price": {"zone": 0.5},
        "description": "Host DNS domains and manage records on Azure infrastructure.",
        "requirements": ["Domain Name"],
        "iac_resources": ["azurerm_dns_zone", "azurerm_dns_a_record"],
    },
    {
        "id": "vm",
        "name": "Virtual Machine",
        "category": "compute",
        "price": {"instance": 0.041},
        "description": "On-demand, scalable Linux and Windows virtual machines.",
        "requirements": ["vnet"],
        "iac_resources": [
            "azurerm_linux_virtual_machine",
            "azurerm_network_interface",
            "azurerm_network_security_group",
        ],
    },
    {
        "id": "aks",
        "name": "AKS",
        "category": "compute",
        "price": {"controlPlane": 0.0, "nodes": 0.102},
        "description": "Azure Kubernetes Service for managed container orchestration.",
        "requirements": ["vnet"],
        "iac_resources": ["azurerm_kubernetes_cluster", "azurerm_kubernetes_cluster_node_pool"],
    },
    {
        "id": "appservice",
        "name": "App Service",
        "category": "compute",
        "price": {"plan": 0.013},
        "description": "Fully managed platform for building and hosting web apps and APIs.",
        "requirements": ["Service Plan"],
        "iac_resources": ["azurerm_service_plan", "azurerm_linux_web_app"],
    },
    {
        "id": "storage",
        "name": "Storage Account",
        "category": "storage",
        "price": {"storage": 0.0208},
        "description": "Durable, highly available storage account for blobs, files and queues.",
        "requirements": ["Account Name", "Replication"],
        "iac_resources": ["azurerm_storage_account"],
    },
    {
        "id": "blob",
        "name": "Blob Storage",
        "category": "storage",
        "price": {"storage": 0.0184},
        "description": "Object storage for unstructured data inside a storage account.",
        "requirements": ["storage"],
        "iac_resources": ["azurerm_storage_container"],
    },
    {
        "id": "files",
        "name": "Azure Files",
        "category": "storage",
        "price": {"storage": 0.06},
        "description": "Managed SMB and NFS file shares in the cloud.",
        "requirements": ["storage"],
        "iac_resources": ["azurerm_storage_share"],
    },
    {
        "id": "servicebus",
        "name": "Service Bus",
        "category": "messaging",
        "price": {"namespace": 0.0135},
        "description": "Enterprise message broker with queues and publish-subscribe topics.",
        "requirements": ["Namespace"],
        "iac_resources": ["azurerm_servicebus_namespace", "azurerm_servicebus_queue"],
    },
    {
        "id": "sql",
        "name": "Azure SQL Database",
        "category": "database",
        "price": {"compute": 0.19},
        "description": "Managed relational SQL database built for the cloud.",
        "requirements": ["Server", "Admin Login"],
        "iac_resources": ["azurerm_mssql_server", "azurerm_mssql_database"],
    },
    {
        "id": "cosmos",
        "name": "Cosmos DB",
        "category": "database",
        "price": {"throughput": 0.008},  # per 100 RU/s
        "description": "Globally distributed, multi-model NoSQL database.",
        "requirements": ["Account Name", "Consistency Level"],
        "iac_resources": ["azurerm_cosmosdb_account", "azurerm_cosmosdb_sql_database"],
    },
]
