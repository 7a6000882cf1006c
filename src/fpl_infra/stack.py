"""
AWS CDK Stack for the FPL Assistant infrastructure.

Creates all AWS resources the assistant needs:
- VPC with public and private subnets across two AZs
- Security groups for the web server and the database tier
- EC2 web server with an instance profile
- S3 buckets for collected data and web assets
- DynamoDB tables for players, fixtures and teams
- IAM roles for the web server and future Lambda functions

Every environment-specific value is a CloudFormation parameter, so one
synthesized template serves dev, staging and prod alike.
"""

from typing import Any

from constructs import Construct
from aws_cdk import (
    App,
    CfnOutput,
    CfnParameter,
    CfnTag,
    DefaultStackSynthesizer,
    Fn,
    RemovalPolicy,
    Stack,
    Tags,
    aws_dynamodb as dynamodb,
    aws_ec2 as ec2,
    aws_iam as iam,
    aws_s3 as s3,
)

from fpl_infra.config import ENVIRONMENTS

DEFAULT_STACK_ID = "FPLAssistantStack"

INSTANCE_TYPE = "t3.medium"

USER_DATA = """#!/bin/bash
yum update -y
yum install -y docker git
systemctl start docker
systemctl enable docker
usermod -a -G docker ec2-user

# Install Node.js
curl -fsSL https://rpm.nodesource.com/setup_18.x | bash -
yum install -y nodejs

# Install Python and pip
yum install -y python3 python3-pip

# Install AWS CLI v2
curl "https://awscli.amazonaws.com/awscli-exe-linux-x86_64.zip" -o "awscliv2.zip"
unzip awscliv2.zip
./aws/install

# Create application directory
mkdir -p /opt/fpl-assistant
chown ec2-user:ec2-user /opt/fpl-assistant

# Install CloudWatch agent
wget https://s3.amazonaws.com/amazoncloudwatch-agent/amazon_linux/amd64/latest/amazon-cloudwatch-agent.rpm
rpm -U ./amazon-cloudwatch-agent.rpm
"""

TABLE_ACTIONS = [
    "dynamodb:GetItem",
    "dynamodb:PutItem",
    "dynamodb:UpdateItem",
    "dynamodb:DeleteItem",
    "dynamodb:Query",
    "dynamodb:Scan",
]

OBJECT_ACTIONS = [
    "s3:GetObject",
    "s3:PutObject",
    "s3:DeleteObject",
]


def _name_tag(value: str) -> list[CfnTag]:
    return [CfnTag(key="Name", value=value)]


def _pin_logical_id(construct: Construct, logical_id: str) -> None:
    """Give an L2 construct's resource a stable, hash-free logical ID."""
    construct.node.default_child.override_logical_id(logical_id)


class FPLAssistantStack(Stack):
    """
    CDK Stack for the FPL Assistant.

    Deployable through plain CloudFormation: no bootstrap version rule,
    no assets.
    """

    def __init__(self, scope: Construct, construct_id: str = DEFAULT_STACK_ID, **kwargs: Any) -> None:
        kwargs.setdefault(
            "synthesizer",
            DefaultStackSynthesizer(generate_bootstrap_version_rule=False),
        )
        kwargs.setdefault("description", "Basic Infrastructure for Fantasy Premier League Assistant")
        super().__init__(scope, construct_id, **kwargs)

        # Parameters
        project_name = CfnParameter(
            self,
            "ProjectName",
            type="String",
            default="fpl-assistant",
            description="Name of the project for resource naming",
        )
        environment = CfnParameter(
            self,
            "Environment",
            type="String",
            default="dev",
            allowed_values=list(ENVIRONMENTS),
            description="Environment name",
        )
        key_pair_name = CfnParameter(
            self,
            "KeyPairName",
            type="AWS::EC2::KeyPair::KeyName",
            description="EC2 Key Pair for SSH access",
        )
        allowed_ssh_cidr = CfnParameter(
            self,
            "AllowedSSHCIDR",
            type="String",
            default="0.0.0.0/0",
            description="CIDR block allowed for SSH access",
        )
        image_id = CfnParameter(
            self,
            "ImageId",
            type="String",
            description="AMI ID for EC2 instance (resolved by the deployment tool)",
        )

        prefix = f"{project_name.value_as_string}-{environment.value_as_string}"

        self._build_network(prefix, allowed_ssh_cidr.value_as_string)
        self._build_storage(prefix)
        self._build_iam(prefix)

        # Web server
        self.web_server = ec2.CfnInstance(
            self,
            "WebServerInstance",
            image_id=image_id.value_as_string,
            instance_type=INSTANCE_TYPE,
            key_name=key_pair_name.value_as_string,
            iam_instance_profile=self.instance_profile.ref,
            security_group_ids=[self.web_security_group.attr_group_id],
            subnet_id=self.public_subnets[0].ref,
            user_data=Fn.base64(USER_DATA),
            tags=_name_tag(f"{prefix}-web-server"),
        )

        self._add_outputs(prefix)

    def _build_network(self, prefix: str, allowed_ssh_cidr: str) -> None:
        self.vpc = ec2.CfnVPC(
            self,
            "VPC",
            cidr_block="10.0.0.0/16",
            enable_dns_hostnames=True,
            enable_dns_support=True,
            tags=_name_tag(f"{prefix}-vpc"),
        )

        self.internet_gateway = ec2.CfnInternetGateway(
            self,
            "InternetGateway",
            tags=_name_tag(f"{prefix}-igw"),
        )
        gateway_attachment = ec2.CfnVPCGatewayAttachment(
            self,
            "InternetGatewayAttachment",
            internet_gateway_id=self.internet_gateway.ref,
            vpc_id=self.vpc.ref,
        )

        # Public subnets in the first two AZs, private subnets beside them
        self.public_subnets = []
        self.private_subnets = []
        for az_index in range(2):
            number = az_index + 1
            availability_zone = Fn.select(az_index, Fn.get_azs())
            self.public_subnets.append(
                ec2.CfnSubnet(
                    self,
                    f"PublicSubnet{number}",
                    vpc_id=self.vpc.ref,
                    availability_zone=availability_zone,
                    cidr_block=f"10.0.{number}.0/24",
                    map_public_ip_on_launch=True,
                    tags=_name_tag(f"{prefix}-public-subnet-{number}"),
                )
            )
            self.private_subnets.append(
                ec2.CfnSubnet(
                    self,
                    f"PrivateSubnet{number}",
                    vpc_id=self.vpc.ref,
                    availability_zone=availability_zone,
                    cidr_block=f"10.0.{number + 2}.0/24",
                    tags=_name_tag(f"{prefix}-private-subnet-{number}"),
                )
            )

        public_route_table = ec2.CfnRouteTable(
            self,
            "PublicRouteTable",
            vpc_id=self.vpc.ref,
            tags=_name_tag(f"{prefix}-public-routes"),
        )
        default_route = ec2.CfnRoute(
            self,
            "DefaultPublicRoute",
            route_table_id=public_route_table.ref,
            destination_cidr_block="0.0.0.0/0",
            gateway_id=self.internet_gateway.ref,
        )
        # The route is rejected until the gateway is attached
        default_route.add_dependency(gateway_attachment)

        for number, subnet in enumerate(self.public_subnets, start=1):
            ec2.CfnSubnetRouteTableAssociation(
                self,
                f"PublicSubnet{number}RouteTableAssociation",
                route_table_id=public_route_table.ref,
                subnet_id=subnet.ref,
            )

        self.web_security_group = ec2.CfnSecurityGroup(
            self,
            "WebServerSecurityGroup",
            group_name=f"{prefix}-web-sg",
            group_description="Security group for web server",
            vpc_id=self.vpc.ref,
            security_group_ingress=[
                self._tcp_ingress(80, "0.0.0.0/0", "HTTP access"),
                self._tcp_ingress(443, "0.0.0.0/0", "HTTPS access"),
                self._tcp_ingress(22, allowed_ssh_cidr, "SSH access"),
                self._tcp_ingress(3000, "0.0.0.0/0", "Development server"),
            ],
            security_group_egress=[
                ec2.CfnSecurityGroup.EgressProperty(
                    ip_protocol="-1",
                    cidr_ip="0.0.0.0/0",
                    description="All outbound traffic",
                ),
            ],
            tags=_name_tag(f"{prefix}-web-sg"),
        )

        self.database_security_group = ec2.CfnSecurityGroup(
            self,
            "DatabaseSecurityGroup",
            group_name=f"{prefix}-db-sg",
            group_description="Security group for database access",
            vpc_id=self.vpc.ref,
            security_group_ingress=[
                ec2.CfnSecurityGroup.IngressProperty(
                    ip_protocol="tcp",
                    from_port=3306,
                    to_port=3306,
                    source_security_group_id=self.web_security_group.attr_group_id,
                    description="MySQL access from web servers",
                ),
            ],
            tags=_name_tag(f"{prefix}-db-sg"),
        )

    @staticmethod
    def _tcp_ingress(port: int, cidr: str, description: str) -> ec2.CfnSecurityGroup.IngressProperty:
        return ec2.CfnSecurityGroup.IngressProperty(
            ip_protocol="tcp",
            from_port=port,
            to_port=port,
            cidr_ip=cidr,
            description=description,
        )

    def _build_storage(self, prefix: str) -> None:
        # Buckets are emptied by the cleanup command before stack deletion
        self.data_bucket = s3.Bucket(
            self,
            "DataBucket",
            bucket_name=f"{prefix}-data-{self.account}",
            versioned=True,
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            removal_policy=RemovalPolicy.DESTROY,
        )
        _pin_logical_id(self.data_bucket, "DataBucket")
        Tags.of(self.data_bucket).add("Name", f"{prefix}-data-bucket")

        self.web_assets_bucket = s3.Bucket(
            self,
            "WebAssetsBucket",
            bucket_name=f"{prefix}-web-assets-{self.account}",
            website_index_document="index.html",
            website_error_document="error.html",
            encryption=s3.BucketEncryption.S3_MANAGED,
            removal_policy=RemovalPolicy.DESTROY,
        )
        _pin_logical_id(self.web_assets_bucket, "WebAssetsBucket")
        Tags.of(self.web_assets_bucket).add("Name", f"{prefix}-web-assets-bucket")

        self.players_table = dynamodb.Table(
            self,
            "PlayersTable",
            table_name=f"{prefix}-players",
            partition_key=dynamodb.Attribute(
                name="player_id",
                type=dynamodb.AttributeType.NUMBER,
            ),
            sort_key=dynamodb.Attribute(
                name="gameweek",
                type=dynamodb.AttributeType.NUMBER,
            ),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            stream=dynamodb.StreamViewType.NEW_AND_OLD_IMAGES,
            removal_policy=RemovalPolicy.DESTROY,
        )

        self.fixtures_table = dynamodb.Table(
            self,
            "FixturesTable",
            table_name=f"{prefix}-fixtures",
            partition_key=dynamodb.Attribute(
                name="fixture_id",
                type=dynamodb.AttributeType.NUMBER,
            ),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            removal_policy=RemovalPolicy.DESTROY,
        )
        # Fixtures are read a gameweek at a time
        self.fixtures_table.add_global_secondary_index(
            index_name="GameweekIndex",
            partition_key=dynamodb.Attribute(
                name="gameweek",
                type=dynamodb.AttributeType.NUMBER,
            ),
            projection_type=dynamodb.ProjectionType.ALL,
        )

        self.teams_table = dynamodb.Table(
            self,
            "TeamsTable",
            table_name=f"{prefix}-teams",
            partition_key=dynamodb.Attribute(
                name="team_id",
                type=dynamodb.AttributeType.NUMBER,
            ),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            removal_policy=RemovalPolicy.DESTROY,
        )

        for logical_id, table, name in (
            ("PlayersTable", self.players_table, "players"),
            ("FixturesTable", self.fixtures_table, "fixtures"),
            ("TeamsTable", self.teams_table, "teams"),
        ):
            _pin_logical_id(table, logical_id)
            Tags.of(table).add("Name", f"{prefix}-{name}-table")

    def _data_access_policies(self) -> dict[str, iam.PolicyDocument]:
        """Inline policies granting item access to the tables and object access to the data bucket."""
        tables = [self.players_table, self.fixtures_table, self.teams_table]
        return {
            "S3Access": iam.PolicyDocument(
                statements=[
                    iam.PolicyStatement(
                        effect=iam.Effect.ALLOW,
                        actions=OBJECT_ACTIONS,
                        resources=[self.data_bucket.arn_for_objects("*")],
                    ),
                    iam.PolicyStatement(
                        effect=iam.Effect.ALLOW,
                        actions=["s3:ListBucket"],
                        resources=[self.data_bucket.bucket_arn],
                    ),
                ]
            ),
            "DynamoDBAccess": iam.PolicyDocument(
                statements=[
                    iam.PolicyStatement(
                        effect=iam.Effect.ALLOW,
                        actions=TABLE_ACTIONS,
                        resources=[table.table_arn for table in tables],
                    ),
                ]
            ),
        }

    def _build_iam(self, prefix: str) -> None:
        ec2_policies = self._data_access_policies()
        ec2_policies["LambdaInvoke"] = iam.PolicyDocument(
            statements=[
                iam.PolicyStatement(
                    effect=iam.Effect.ALLOW,
                    actions=["lambda:InvokeFunction"],
                    resources=["*"],
                ),
            ]
        )

        self.ec2_role = iam.Role(
            self,
            "EC2Role",
            role_name=f"{prefix}-ec2-role",
            assumed_by=iam.ServicePrincipal("ec2.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("CloudWatchAgentServerPolicy"),
            ],
            inline_policies=ec2_policies,
        )
        _pin_logical_id(self.ec2_role, "EC2Role")

        self.instance_profile = iam.CfnInstanceProfile(
            self,
            "EC2InstanceProfile",
            roles=[self.ec2_role.role_name],
        )

        self.lambda_role = iam.Role(
            self,
            "LambdaExecutionRole",
            role_name=f"{prefix}-lambda-role",
            assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    "service-role/AWSLambdaBasicExecutionRole"
                ),
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    "service-role/AWSLambdaVPCAccessExecutionRole"
                ),
            ],
            inline_policies=self._data_access_policies(),
        )
        _pin_logical_id(self.lambda_role, "LambdaExecutionRole")

    def _add_outputs(self, prefix: str) -> None:
        CfnOutput(
            self,
            "VPCId",
            value=self.vpc.ref,
            description="VPC ID",
            export_name=f"{prefix}-vpc-id",
        )

        for number, subnet in enumerate(self.public_subnets, start=1):
            CfnOutput(
                self,
                f"PublicSubnet{number}Id",
                value=subnet.ref,
                description=f"Public Subnet {number} ID",
                export_name=f"{prefix}-public-subnet-{number}-id",
            )

        CfnOutput(
            self,
            "WebServerPublicIP",
            value=self.web_server.attr_public_ip,
            description="Web Server Public IP",
        )
        CfnOutput(
            self,
            "WebServerPrivateIP",
            value=self.web_server.attr_private_ip,
            description="Web Server Private IP",
        )

        CfnOutput(
            self,
            "DataBucketName",
            value=self.data_bucket.bucket_name,
            description="Data S3 Bucket Name",
            export_name=f"{prefix}-data-bucket-name",
        )
        CfnOutput(
            self,
            "WebAssetsBucketName",
            value=self.web_assets_bucket.bucket_name,
            description="Web Assets S3 Bucket Name",
            export_name=f"{prefix}-web-assets-bucket-name",
        )

        for output_id, table, name in (
            ("PlayersTableName", self.players_table, "players"),
            ("FixturesTableName", self.fixtures_table, "fixtures"),
            ("TeamsTableName", self.teams_table, "teams"),
        ):
            CfnOutput(
                self,
                output_id,
                value=table.table_name,
                description=f"{name.capitalize()} DynamoDB Table Name",
                export_name=f"{prefix}-{name}-table-name",
            )

        CfnOutput(
            self,
            "LambdaExecutionRoleArn",
            value=self.lambda_role.role_arn,
            description="Lambda Execution Role ARN",
            export_name=f"{prefix}-lambda-role-arn",
        )


def synthesize_template(construct_id: str = DEFAULT_STACK_ID) -> dict[str, Any]:
    """
    Synthesize the stack into a CloudFormation template.

    Requires Node.js, which the CDK runtime uses under the hood.
    """
    app = App(analytics_reporting=False)
    stack = FPLAssistantStack(app, construct_id)
    return app.synth().get_stack_by_name(stack.stack_name).template
