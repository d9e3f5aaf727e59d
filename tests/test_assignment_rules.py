import unittest

from scheduling_core.core.assignment_rules import TutorRoster, validate_assignment
from scheduling_core.core.errors import DuplicateTutor, IncompleteAssignment, ValidationError


class AssignmentValidatorTests(unittest.TestCase):
    def test_valid_roster_is_trimmed(self):
        roster = validate_assignment(' T1 ', 'T2', 'T3\n')
        self.assertEqual(roster, TutorRoster('T1', 'T2', 'T3'))
        self.assertEqual(roster.as_set(), {'T1', 'T2', 'T3'})

    def test_missing_role_names_the_gap(self):
        with self.assertRaises(IncompleteAssignment) as ctx:
            validate_assignment('T1', '   ', None)
        self.assertIn('Substitute tutor 1', ctx.exception.reason)
        self.assertIn('Substitute tutor 2', ctx.exception.reason)
        self.assertEqual(ctx.exception.context['missing_roles'], ['substitute1', 'substitute2'])

    def test_duplicate_main_and_substitute(self):
        with self.assertRaises(DuplicateTutor) as ctx:
            validate_assignment('T1', 'T1', 'T2')
        self.assertEqual(ctx.exception.code, 'duplicate_tutor')
        self.assertEqual(ctx.exception.context['roles'], ['main', 'substitute1'])

    def test_duplicate_detected_after_trimming(self):
        with self.assertRaises(DuplicateTutor):
            validate_assignment('T1', 'T2', ' T2 ')

    def test_errors_are_validation_kind(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_assignment('', '', '')
        self.assertEqual(ctx.exception.status_code, 422)


if __name__ == '__main__':
    unittest.main()
