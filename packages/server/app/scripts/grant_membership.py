"""
Grant a provisioned user a role in an organization, creating the organization if needed.

Users are provisioned on first login, so run this after the user has signed in once:

    python -m app.scripts.grant_membership --email ana@example.com --org clinica-sur --role owner
"""

import argparse
import asyncio

from app.core.config import get_settings
from app.core.database import get_session_context
from app.core.errors import NotFound
from app.core.logging import configure_logging
from app.services.organizations import grant_membership
from reservaplus_shared.schemas.common import IndustryType, Role


async def grant(email: str, org_slug: str, org_name: str | None, industry: str, role: str) -> int:
    try:
        async with get_session_context() as session:
            membership = await grant_membership(
                email,
                org_slug,
                session,
                org_name=org_name,
                industry_type=IndustryType(industry),
                role=Role(role),
            )
    except NotFound as exc:
        print(exc.message)
        return 1

    print(f"{email} is now {membership.role} of {org_slug}.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Grant a user a role in an organization.")
    parser.add_argument("--email", required=True, help="Email address of an existing user")
    parser.add_argument("--org", required=True, help="Organization slug")
    parser.add_argument("--name", default=None, help="Organization name when it is created")
    parser.add_argument(
        "--industry",
        default=IndustryType.CLINIC.value,
        choices=[t.value for t in IndustryType],
        help="Industry type when the organization is created",
    )
    parser.add_argument(
        "--role",
        default=Role.OWNER.value,
        choices=[r.value for r in Role],
        help="Role to grant",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log_level, "text")
    return asyncio.run(grant(args.email, args.org, args.name, args.industry, args.role))


if __name__ == "__main__":
    raise SystemExit(main())
