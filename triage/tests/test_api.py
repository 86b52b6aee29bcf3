"""
Integration tests for the queue API.

These tests drive the HTTP endpoints with DRF's APIClient: admission,
ranking, status updates, escalation, call-next, broadcasts, statistics and
the error format.  SMS delivery is disabled in the test settings, so
notifications go to the websocket sink and the notification log only.
"""
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from ..models import NotificationLog, QueueEntry, StatusTransition

User = get_user_model()


class QueueAPITests(APITestCase):
    def setUp(self) -> None:
        cache.clear()
        self.staff = User.objects.create_user(username="desk1", password="deskpass", is_staff=True)
        self.visitor = User.objects.create_user(username="visitor", password="visitorpass")
        self.client = APIClient()
        self.authenticate(self.staff)

    def authenticate(self, user) -> None:
        self.client.force_authenticate(user=user)

    def admit(self, ref, **extra):
        payload = {'hospital': 'City', 'department': 'ER', 'patientRef': ref, 'age': 30, 'symptomText': 'cough'}
        payload.update(extra)
        resp = self.client.post(reverse('queue-admit'), payload, format='json')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED, resp.data)
        return resp.data['entry']

    def ranking(self):
        resp = self.client.get(reverse('queue-ranking'), {'hospital': 'City', 'department': 'ER'})
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        return [(e['patientRef'], e['position']) for e in resp.data['data']]

    def test_requires_staff(self) -> None:
        self.client.force_authenticate(user=None)
        resp = self.client.get(reverse('queue-ranking'), {'hospital': 'City', 'department': 'ER'})
        self.assertIn(resp.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
        self.assertFalse(resp.data['ok'])

        self.authenticate(self.visitor)
        resp = self.client.post(reverse('queue-admit'), {'hospital': 'City'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

    def test_admit_and_rank(self) -> None:
        first = self.admit('p-1')
        self.assertEqual(first['position'], 1)
        self.assertEqual(first['tier'], 'standard')
        self.assertEqual(first['score'], 40)
        self.assertTrue(first['ticketId'].startswith('QCE'))

        urgent = self.admit('p-2', symptomText='high fever & cough for <2 days', age=70)
        self.assertEqual(urgent['position'], 1)
        self.assertEqual(urgent['tier'], 'critical')
        self.assertTrue(urgent['escalated'])
        self.assertEqual(self.ranking(), [('p-2', 1), ('p-1', 2)])

        row = QueueEntry.objects.get(ticket_id=urgent['ticketId'])
        self.assertEqual(row.symptom_text, 'high fever & cough for <2 days')

    def test_names_and_reasons_are_plain_text(self) -> None:
        entry = self.admit('p-1', patientName='<b onclick="x()">Ana &amp; Bo</b>')
        self.assertEqual(entry['patientName'], 'Ana & Bo')

        resp = self.client.post(reverse('queue-entry-status'), {
            'ticketId': entry['ticketId'], 'status': 'called', 'reason': '<i>room 3</i> & 4',
        }, format='json')
        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.data)
        self.assertEqual(StatusTransition.objects.get(entry__ticket_id=entry['ticketId']).reason, 'room 3 & 4')

    def test_admit_validation(self) -> None:
        resp = self.client.post(reverse('queue-admit'), {
            'hospital': 'City', 'department': 'ER', 'patientRef': 'p-1', 'age': -3,
        }, format='json')
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(resp.data['ok'])
        self.assertFalse(QueueEntry.objects.exists())

    def test_status_flow_and_history(self) -> None:
        entry = self.admit('p-1')
        url = reverse('queue-entry-status')
        for new_status in ('called', 'in-progress', 'completed'):
            resp = self.client.post(url, {'ticketId': entry['ticketId'], 'status': new_status}, format='json')
            self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.data)
            self.assertEqual(resp.data['entry']['status'], new_status)

        resp = self.client.post(url, {'ticketId': entry['ticketId'], 'status': 'waiting'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(resp.data['error']['code'], 'invalid_transition')

        detail = self.client.get(reverse('queue-entry'), {'ticketId': entry['ticketId']})
        self.assertEqual(detail.status_code, status.HTTP_200_OK)
        history = detail.data['data']['transitionHistory']
        self.assertEqual([(h['from'], h['to']) for h in history], [
            ('waiting', 'called'), ('called', 'in-progress'), ('in-progress', 'completed'),
        ])
        self.assertEqual(history[0]['operator'], 'desk1')

    def test_unknown_ticket_is_404(self) -> None:
        resp = self.client.post(reverse('queue-entry-status'), {'ticketId': 'QXX000000-0000', 'status': 'called'},
                                format='json')
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.data['error']['code'], 'not_found')

    def test_escalate(self) -> None:
        for n in range(1, 5):
            self.admit(f'p-{n}')
        target = self.admit('p-5')
        self.assertEqual(target['position'], 5)

        resp = self.client.post(reverse('queue-entry-escalate'),
                                {'ticketId': target['ticketId'], 'reason': 'deteriorating'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.data)
        self.assertEqual(resp.data['entry']['position'], 1)
        kinds = {n['kind'] for n in resp.data['notifications'] if n['ticketId'] == target['ticketId']}
        self.assertIn('priority_escalated', kinds)
        self.assertIn('position_improved', kinds)
        self.assertTrue(StatusTransition.objects.filter(entry__ticket_id=target['ticketId'], escalation=True).exists())

        logs = self.client.get(reverse('queue-entry-notifications'), {'ticketId': target['ticketId']})
        self.assertEqual(logs.status_code, status.HTTP_200_OK)
        self.assertIn('priority_escalated', {n['kind'] for n in logs.data['data']})

    def test_call_next(self) -> None:
        resp = self.client.post(reverse('queue-call-next'), {'hospital': 'City', 'department': 'ER'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertIsNone(resp.data['entry'])

        self.admit('p-1')
        self.admit('p-2', symptomText='migraine')
        resp = self.client.post(reverse('queue-call-next'), {'hospital': 'City', 'department': 'ER'}, format='json')
        self.assertEqual(resp.data['entry']['patientRef'], 'p-2')
        self.assertEqual(resp.data['entry']['status'], 'called')
        self.assertEqual(self.ranking(), [('p-1', 1)])

    def test_ranking_counts_waiting_time_since_last_rerank(self) -> None:
        self.admit('p-1')
        self.admit('p-2', age=70)
        self.assertEqual(self.ranking(), [('p-2', 1), ('p-1', 2)])

        QueueEntry.objects.filter(patient_ref='p-1').update(created_at=timezone.now() - timedelta(hours=2))
        self.assertEqual(self.ranking(), [('p-1', 1), ('p-2', 2)])
        # reads never write positions back
        self.assertEqual(QueueEntry.objects.get(patient_ref='p-2').current_position, 1)

    def test_entry_reads_go_through_store(self) -> None:
        entry = self.admit('p-1', symptomText='fever', isPregnant=True)
        detail = self.client.get(reverse('queue-entry'), {'ticketId': entry['ticketId']})
        self.assertEqual(detail.data['data']['symptomText'], 'fever')
        self.assertTrue(detail.data['data']['isPregnant'])
        self.assertEqual(detail.data['data']['transitionHistory'], [])

        logs = self.client.get(reverse('queue-entry-notifications'), {'ticketId': entry['ticketId']})
        self.assertEqual({n['kind'] for n in logs.data['data']}, {'next_patient'})

        for name in ('queue-entry', 'queue-entry-notifications'):
            resp = self.client.get(reverse(name), {'ticketId': 'QXX000000-0000'})
            self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_broadcast(self) -> None:
        self.admit('p-1')
        self.admit('p-2')
        resp = self.client.post(reverse('queue-broadcast'), {
            'hospital': 'City', 'department': 'ER', 'message': 'Doctor delayed', 'severity': 'info',
        }, format='json')
        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.data)
        self.assertEqual(resp.data['recipients'], 2)
        self.assertEqual(NotificationLog.objects.filter(kind='broadcast', severity='info', channel='push').count(), 2)

    def test_stats(self) -> None:
        self.admit('p-1')
        self.admit('p-2', symptomText='stroke')
        resp = self.client.get(reverse('queue-stats'), {'hospital': 'City', 'department': 'ER'})
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        data = resp.data['data']
        self.assertEqual(data['counts']['waiting'], 2)
        self.assertEqual(data['waitingByTier']['critical'], 1)
        self.assertEqual(data['waitingByTier']['standard'], 1)

    def test_healthz(self) -> None:
        resp = self.client.get(reverse('healthz'))
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()['ok'])
