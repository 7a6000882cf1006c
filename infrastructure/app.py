#!/usr/bin/env python3
"""
CDK Application entry point.

Synthesize with: cdk synth
Deploy with the CLI instead: fpl-infra deploy
"""

import aws_cdk as cdk

from fpl_infra.stack import DEFAULT_STACK_ID, FPLAssistantStack


def main():
    """Create and configure the CDK app."""
    app = cdk.App(analytics_reporting=False)

    # Stack id from context, so several copies can be diffed side by side
    stack_id = app.node.try_get_context("stack_id") or DEFAULT_STACK_ID

    FPLAssistantStack(app, stack_id)

    app.synth()


if __name__ == "__main__":
    main()
