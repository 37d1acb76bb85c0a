"""Declarative description of each profile kind and its linked records.

A ``ProfileKind`` tells the reconciliation service which CMS collection holds
the profile, who may own or read it, and how each relation, component and
media field in a submitted payload must be reshaped before the write.
"""

from pydantic import BaseModel


class RelationSpec(BaseModel):
    """A relation field pointing at independently addressable child records."""

    field: str
    collection: str
    many: bool = False
    # Student relations are written as {"set": [{"id": n}]} / {"id": n}.
    wrap: bool = False
    # Records matched by these fields are reused instead of created.
    natural_key: tuple[str, ...] = ()
    required_fields: tuple[str, ...] = ()
    label_fields: tuple[str, ...] = ()
    noun: str = "record"
    clean_locations: bool = False
    media_fields: tuple[str, ...] = ()
    # Nested dicts are references only; the service never writes them.
    reference_only: bool = False
    # A failed child rejects the whole profile write instead of being skipped.
    failures_abort: bool = False

    def child_label(self, record: dict, index: int) -> str:
        """Readable name for a child, used when reporting a failure."""
        if not self.label_fields:
            return f"{self.field}[{index}]"
        name = record.get(self.label_fields[0])
        if not name:
            return f"Unnamed {self.noun}"
        qualifiers = [str(record[key]) for key in self.label_fields[1:] if record.get(key)]
        if len(qualifiers) < len(self.label_fields) - 1:
            missing = [key for key in self.label_fields[1:] if not record.get(key)]
            return f"{name} (missing {', '.join(missing)})"
        return f"{name} ({', '.join(qualifiers)})" if qualifiers else str(name)


class ProfileKind(BaseModel):
    name: str
    collection: str
    label: str
    owner_roles: tuple[str, ...]
    # None means any authenticated user may read other profiles.
    viewer_roles: tuple[str, ...] | None = None
    self_only: bool = False
    relations: tuple[RelationSpec, ...] = ()
    components: tuple[str, ...] = ()
    repeatable_components: tuple[str, ...] = ()
    media_fields: tuple[str, ...] = ()
    required_on_create: tuple[str, ...] = ()
    allowed_fields: tuple[str, ...] | None = None
    populate: dict | str = "*"

    def relation(self, field: str) -> RelationSpec | None:
        return next((spec for spec in self.relations if spec.field == field), None)

    @property
    def lookup_populate(self) -> dict:
        """Populate used by the owner lookup: the user plus every component."""
        populate: dict = {"user": {"fields": ["id"]}}
        for field in (*self.components, *self.repeatable_components):
            populate[field] = True
        return populate

    def accepts(self, field: str) -> bool:
        if self.allowed_fields is None:
            return True
        return field in self.allowed_fields


# ── Kinds ─────────────────────────────────────────────────────────────


STUDENT = ProfileKind(
    name="student",
    collection="student-profiles",
    label="Student profile",
    owner_roles=("student", "candidate"),
    viewer_roles=(),
    self_only=True,
    relations=(
        RelationSpec(
            field="primary_education",
            collection="primary-educations",
            wrap=True,
            clean_locations=True,
            noun="primary education",
        ),
        RelationSpec(
            field="secondary_education",
            collection="secondary-educations",
            wrap=True,
            clean_locations=True,
            noun="secondary education",
        ),
        RelationSpec(
            field="tertiary_educations",
            collection="tertiar-educations",
            many=True,
            wrap=True,
            clean_locations=True,
            noun="tertiary education",
        ),
        RelationSpec(
            field="professional_experiences",
            collection="professional-experiences",
            many=True,
            wrap=True,
            media_fields=("attachments",),
            noun="professional experience",
        ),
        RelationSpec(
            field="research_engagements",
            collection="research-engagements",
            many=True,
            wrap=True,
            media_fields=("attachments",),
            noun="research engagement",
        ),
    ),
    components=("residentialAddress", "birthAddress", "personToBeContacted"),
    populate="*",
)

CANDIDATE = ProfileKind(
    name="candidate",
    collection="candidate-profiles",
    label="Candidate profile",
    owner_roles=("candidate",),
    viewer_roles=("employer",),
    relations=(
        RelationSpec(
            field="skills",
            collection="skills",
            many=True,
            natural_key=("skillName", "level"),
            required_fields=("skillName", "level"),
            label_fields=("skillName", "level"),
            noun="skill",
            failures_abort=True,
        ),
    ),
    repeatable_components=("education", "experience"),
    media_fields=("profilePicture", "resume"),
    allowed_fields=(
        "fullName",
        "phone",
        "bio",
        "profilePicture",
        "resume",
        "skills",
        "education",
        "experience",
    ),
    populate={
        "user": {"fields": ["id", "email", "username"]},
        "profilePicture": True,
        "resume": True,
        "skills": True,
        "education": True,
        "experience": True,
    },
)

EMPLOYER = ProfileKind(
    name="employer",
    collection="employer-profiles",
    label="Employer profile",
    owner_roles=("employer",),
    viewer_roles=None,
    relations=(
        RelationSpec(field="company", collection="companies", reference_only=True, noun="company"),
    ),
    media_fields=("profilePicture",),
    required_on_create=("fullName",),
    allowed_fields=("fullName", "jobTitle", "phone", "bio", "profilePicture", "company"),
    populate={
        "user": {"fields": ["id", "email", "username"]},
        "profilePicture": True,
        "company": {"populate": {"logo": True}},
    },
)

KINDS = {kind.name: kind for kind in (STUDENT, CANDIDATE, EMPLOYER)}
