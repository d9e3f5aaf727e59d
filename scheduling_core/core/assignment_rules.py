from __future__ import annotations

from typing import NamedTuple

from scheduling_core.core.errors import DuplicateTutor, IncompleteAssignment


ROLE_LABELS = {
    'main': 'Main tutor',
    'substitute1': 'Substitute tutor 1',
    'substitute2': 'Substitute tutor 2',
}


class TutorRoster(NamedTuple):
    main: str
    substitute1: str
    substitute2: str

    def as_set(self) -> set[str]:
        return {self.main, self.substitute1, self.substitute2}


def _clean_id(value) -> str:
    return str(value or '').strip()


def validate_assignment(main_id, sub1_id, sub2_id) -> TutorRoster:
    """Check a main/sub1/sub2 roster and return it with ids trimmed.

    Availability against other contracts is not checked here.
    """
    roster = {
        'main': _clean_id(main_id),
        'substitute1': _clean_id(sub1_id),
        'substitute2': _clean_id(sub2_id),
    }
    missing = [role for role, tutor_id in roster.items() if not tutor_id]
    if missing:
        labels = ', '.join(ROLE_LABELS[role] for role in missing)
        raise IncompleteAssignment(
            f'All three tutor roles must be filled. Missing: {labels}.',
            context={'missing_roles': missing},
        )

    seen: dict[str, str] = {}
    for role, tutor_id in roster.items():
        if tutor_id in seen:
            raise DuplicateTutor(
                f'{ROLE_LABELS[role]} is the same person as {ROLE_LABELS[seen[tutor_id]].lower()}; '
                'each role needs a different tutor.',
                context={'tutor_id': tutor_id, 'roles': [seen[tutor_id], role]},
            )
        seen[tutor_id] = role

    return TutorRoster(roster['main'], roster['substitute1'], roster['substitute2'])
