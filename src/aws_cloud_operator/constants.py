"""Constants for the AWS Cloud Operator."""

# API Group
API_GROUP = "aws.cloud37.dev"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_PROVIDER_CONFIG = "ProviderConfig"
KIND_REPLICATION_GROUP = "ReplicationGroup"
KIND_CACHE_CLUSTER = "CacheCluster"
KIND_CACHE_SUBNET_GROUP = "CacheSubnetGroup"
KIND_CACHE_PARAMETER_GROUP = "CacheParameterGroup"
KIND_PROVISIONED_PRODUCT = "ProvisionedProduct"
KIND_BUCKET = "Bucket"
KIND_SECURITY_GROUP = "SecurityGroup"
KIND_SUBNET = "Subnet"
KIND_TOPIC = "Topic"

# Plurals used for custom object API calls
PLURALS = {
    KIND_PROVIDER_CONFIG: "providerconfigs",
    KIND_REPLICATION_GROUP: "replicationgroups",
    KIND_CACHE_CLUSTER: "cacheclusters",
    KIND_CACHE_SUBNET_GROUP: "cachesubnetgroups",
    KIND_CACHE_PARAMETER_GROUP: "cacheparametergroups",
    KIND_PROVISIONED_PRODUCT: "provisionedproducts",
    KIND_BUCKET: "buckets",
    KIND_SECURITY_GROUP: "securitygroups",
    KIND_SUBNET: "subnets",
    KIND_TOPIC: "topics",
}

CONTROLLER_NAME = "aws-cloud-operator"
DEFAULT_PROVIDER_CONFIG = "default"

# Annotations
ANNOTATION_EXTERNAL_NAME = f"{API_GROUP}/external-name"
ANNOTATION_CREATE_SUCCEEDED = f"{API_GROUP}/external-create-succeeded"
ANNOTATION_PAUSED = f"{API_GROUP}/paused"
ANNOTATION_ENDPOINT_SERVICE_ID = f"{API_GROUP}/endpoint-service-id"
ANNOTATION_ENDPOINT_URL = f"{API_GROUP}/endpoint-url"
ANNOTATION_ENDPOINT_SIGNING_REGION = f"{API_GROUP}/endpoint-signing-region"

# Provider-managed AWS tags
TAG_CONTROLLER = f"{API_GROUP}/controller"
TAG_KIND = f"{API_GROUP}/kind"
TAG_EXTERNAL_NAME = f"{API_GROUP}/external-name"

# Finalizers
FINALIZER = f"{API_GROUP}/finalizer"

# Field Manager
FIELD_MANAGER = "aws-cloud-operator"

# Condition Types
COND_READY = "Ready"
COND_SYNCED = "Synced"
COND_AUTH_VALID = "AuthValid"

# Condition Reasons
REASON_AVAILABLE = "Available"
REASON_CREATING = "Creating"
REASON_DELETING = "Deleting"
REASON_UNAVAILABLE = "Unavailable"
REASON_RECONCILE_SUCCESS = "ReconcileSuccess"
REASON_RECONCILE_ERROR = "ReconcileError"
REASON_RECONCILE_PAUSED = "ReconcilePaused"

# Management policies
MANAGEMENT_OBSERVE = "Observe"
MANAGEMENT_CREATE = "Create"
MANAGEMENT_UPDATE = "Update"
MANAGEMENT_DELETE = "Delete"
MANAGEMENT_LATE_INITIALIZE = "LateInitialize"
MANAGEMENT_ALL = "*"

# Deletion policies
DELETION_POLICY_DELETE = "Delete"
DELETION_POLICY_ORPHAN = "Orphan"

# Credential sources
CREDENTIALS_SOURCE_NONE = "None"
CREDENTIALS_SOURCE_SECRET = "Secret"
CREDENTIALS_SOURCE_SERVICE_ACCOUNT = "ServiceAccount"
CREDENTIALS_SOURCE_IRSA = "IRSA"
CREDENTIALS_SOURCE_POD_IDENTITY = "PodIdentity"
CREDENTIALS_SOURCE_INJECTED_IDENTITY = "InjectedIdentity"

# Connection secret keys
CONNECTION_KEY_ENDPOINT = "endpoint"
CONNECTION_KEY_PORT = "port"
CONNECTION_KEY_PASSWORD = "password"
CONNECTION_KEY_USERNAME = "username"
CONNECTION_KEY_READER_ENDPOINT = "readerEndpoint"
CONNECTION_KEY_READER_PORT = "readerPort"
CONNECTION_KEY_REGION = "region"

# Idempotency tokens
IDEMPOTENCY_TOKEN_PREFIX = "provider-aws"

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_VALIDATE_SUCCEEDED = "ValidateSucceeded"
EVENT_REASON_VALIDATE_FAILED = "ValidateFailed"
EVENT_REASON_CREATED_EXTERNAL = "CreatedExternalResource"
EVENT_REASON_UPDATED_EXTERNAL = "UpdatedExternalResource"
EVENT_REASON_DELETED_EXTERNAL = "DeletedExternalResource"
EVENT_REASON_REFERENCES_PENDING = "CannotResolveReferences"
