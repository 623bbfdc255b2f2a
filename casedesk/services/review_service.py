import json
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional
from config.config import Config
from casedesk.database import get_db
from casedesk.integrations import BackendClient, BackendAPIError
from casedesk.models import CheckStatus, FileRef
from casedesk.models.review_draft import ReviewDraft, DraftState, DraftEvent, InvalidTransition, next_state
from casedesk.services.document_service import DocumentResolver
from casedesk.services.reconciler import (
    annotate, merge_checks, keyed_checks, find_saved_check, expand_comments,
    flatten_comments, parse_verified_data, review_sections, VERIFIED_FIELDS
)
from casedesk.services.results import backend_error, not_found, conflict
from casedesk.services.schema_service import describe_params
from casedesk.utils.keys import normalize_key
from casedesk.utils.logger import get_logger

logger = get_logger(__name__)

LOCAL_KEYS = ('_displayName', '_normalized')
SAVING_MESSAGE = 'A save is already in progress for this check'
STALE_SAVE_MESSAGE = 'The previous save did not finish. Please save again.'


def _refresh_values(draft: ReviewDraft, check: Dict):
    """Overwrite a draft's working values with the server-confirmed check"""
    draft.status = check.get('status') or CheckStatus.PENDING.value
    draft.verified_data = parse_verified_data(check.get('verifiedData'))
    draft.comments = expand_comments(check.get('comments'), check.get('checkType') or '')
    draft.dirty = []
    draft.last_error = None


def _outgoing(check: Dict) -> Dict:
    return {k: v for k, v in (check or {}).items() if k not in LOCAL_KEYS}


def _staged_check(draft: ReviewDraft) -> Dict:
    check = _outgoing(draft.server_check)
    check['status'] = draft.status or CheckStatus.PENDING.value
    check['verifiedData'] = draft.verified_data or {}
    check['comments'] = flatten_comments(draft.comments or {}, draft.check_type or '')
    return check


def _stale(draft: ReviewDraft) -> bool:
    """A save claim older than any request to the backend could take"""
    claimed_at = draft.updated_at or draft.created_at
    return claimed_at is not None and datetime.utcnow() - claimed_at > timedelta(seconds=Config.SAVE_STALE_SECONDS)


class ReviewService:
    """Service for the admin review of a case's checks.

    Staged edits are kept per reviewer: each user only ever sees and saves
    their own drafts of a case.
    """

    def __init__(self, user_id: str, client: BackendClient = None):
        if not user_id:
            raise ValueError("A reviewer id is required")
        self.user_id = str(user_id)
        self.client = client or BackendClient()

    # -------------------- Draft store --------------------

    def _query(self, db, case_id: str):
        return db.query(ReviewDraft).filter(ReviewDraft.case_id == case_id,
                                            ReviewDraft.user_id == self.user_id)

    def _drafts(self, db, case_id: str) -> List[ReviewDraft]:
        return self._query(db, case_id).order_by(ReviewDraft.position).all()

    def _draft(self, db, case_id: str, check_key: str) -> Optional[ReviewDraft]:
        return self._query(db, case_id).filter(ReviewDraft.check_key == check_key).first()

    def _sync(self, case_id: str, server_checks: List[Dict], saved_keys: Optional[List[str]] = None) -> List[ReviewDraft]:
        """Merge server checks into the stored drafts, keeping staged edits and order"""
        saved_keys = saved_keys or []
        with get_db() as db:
            drafts = self._drafts(db, case_id)
            previous = [d.server_check or {} for d in drafts]
            merged = merge_checks(previous, [annotate(c) for c in server_checks or []])
            existing = {d.check_key: d for d in drafts}

            result = []
            for position, (key, check) in enumerate(keyed_checks(merged)):
                draft = existing.get(key)
                if draft is None:
                    draft = ReviewDraft(case_id=case_id, user_id=self.user_id, check_key=key,
                                        state=DraftState.PRISTINE)
                    db.add(draft)
                    _refresh_values(draft, check)

                draft.position = position
                draft.display_name = check.get('_displayName')
                draft.check_type = check.get('checkType')
                draft.server_check = check

                if key in saved_keys and draft.state == DraftState.SAVING:
                    if find_saved_check(check, server_checks, allow_single=len(saved_keys) == 1) is not None:
                        _refresh_values(draft, check)
                    else:
                        draft.server_check = {**_staged_check(draft), **{k: check.get(k) for k in LOCAL_KEYS}}
                        draft.dirty = []
                        draft.last_error = None
                    draft.state = next_state(draft.state, DraftEvent.SAVE_SUCCEEDED)
                elif draft.state == DraftState.SAVING:
                    if _stale(draft):
                        logger.warning(f"Releasing unfinished save of {case_id}/{key} for {self.user_id}")
                        draft.state = next_state(draft.state, DraftEvent.SAVE_FAILED)
                        draft.last_error = STALE_SAVE_MESSAGE
                elif not draft.is_dirty:
                    _refresh_values(draft, check)
                result.append(draft)

            db.flush()
            return result

    def _claim(self, case_id: str, check_keys: Optional[List[str]] = None) -> Optional[Dict]:
        """Move drafts into SAVING; refuses if any of them is already saving"""
        with get_db() as db:
            query = self._query(db, case_id)
            if check_keys is not None:
                query = query.filter(ReviewDraft.check_key.in_(check_keys))
            total = query.count()
            if not total:
                return not_found('Check not found')

            claimed = query.filter(ReviewDraft.state != DraftState.SAVING).update(
                {'state': DraftState.SAVING, 'updated_at': datetime.utcnow()}, synchronize_session=False)
            if claimed != total:
                db.rollback()
                return conflict(SAVING_MESSAGE)
        return None

    def _fail(self, case_id: str, check_keys: Optional[List[str]], message: str):
        """Release claimed drafts after a failed save, keeping their staged values"""
        with get_db() as db:
            query = self._query(db, case_id)
            if check_keys is not None:
                query = query.filter(ReviewDraft.check_key.in_(check_keys))
            for draft in query.all():
                if draft.state == DraftState.SAVING:
                    draft.state = next_state(draft.state, DraftEvent.SAVE_FAILED)
                draft.last_error = message

    # -------------------- Views --------------------

    def check_view(self, draft: ReviewDraft, resolver: Optional[DocumentResolver] = None,
                   case: Optional[Dict] = None) -> Dict:
        check = draft.server_check or {}
        check_type = draft.check_type or ''
        sections = review_sections(check)
        view = {
            'key': draft.check_key,
            'displayName': draft.display_name,
            'checkType': check_type,
            'status': draft.status,
            'state': draft.state.value,
            'lastError': draft.last_error,
            'dirty': bool(draft.is_dirty),
            'params': check.get('params') or {},
            'statedDetails': describe_params(check, case),
            'sections': sections,
            'verifiedFields': list(VERIFIED_FIELDS),
            'verifiedData': draft.verified_data or {},
            'comments': draft.comments or {}
        }
        if resolver is not None:
            view['documents'] = [d.to_dict() for d in resolver.submitted_documents_for(check_type)]
            view['sectionDocuments'] = {
                section: [d.to_dict() for d in resolver.documents_for_section(check_type, section)]
                for section in sections if section != '_default'
            }
            view['verifiedDocuments'] = [d.to_dict() for d in resolver.verified_documents_for(check_type)]
        return view

    def _case_view(self, case: Dict, drafts: List[ReviewDraft]) -> Dict:
        resolver = DocumentResolver(case)
        return {
            'id': case.get('_id') or case.get('id'),
            'candidateName': case.get('candidateName') or (case.get('candidateInfo') or {}).get('candidateName'),
            'candidateInfo': case.get('candidateInfo') or {},
            'status': case.get('status'),
            'statuses': CheckStatus.values(),
            'checks': [self.check_view(d, resolver, case) for d in drafts]
        }

    # -------------------- Operations --------------------

    def load_case(self, case_id: str) -> Dict:
        """Fetch a case and reconcile it with any staged review edits"""
        try:
            case = self.client.get_case(case_id)
        except BackendAPIError as e:
            return backend_error(e, 'Failed to load case')
        if not isinstance(case, dict):
            logger.error(f"Unexpected case body for {case_id}: {type(case).__name__}")
            return {'error': 'Failed to load case', 'status_code': 502}

        try:
            checks = case.get('checks')
            drafts = self._sync(case_id, checks if isinstance(checks, list) else [])
            return self._case_view(case, drafts)
        except Exception as e:
            logger.error(f"Error reconciling case {case_id}: {str(e)}")
            return {'error': 'Failed to load case', 'status_code': 500}

    def stage(self, case_id: str, check_key: str, status: Optional[str] = None,
              verified_data: Optional[Dict] = None, comments=None) -> Dict:
        """Stage review edits for one check without sending them"""
        if status is not None and status not in CheckStatus.values():
            return {'error': f"Invalid status: {status}"}

        with get_db() as db:
            draft = self._draft(db, case_id, check_key)
            if not draft:
                return not_found('Check not found')
            try:
                draft.state = next_state(draft.state, DraftEvent.EDIT)
            except InvalidTransition:
                return conflict('This check is being saved; wait for the save to finish')

            dirty = list(draft.dirty or [])
            if status is not None:
                draft.status = status
                dirty.append('status')

            if verified_data:
                data = {k: dict(v) for k, v in (draft.verified_data or {}).items() if isinstance(v, dict)}
                for section, fields in verified_data.items():
                    if not isinstance(fields, dict):
                        continue
                    data[section] = {**data.get(section, {}), **fields}
                    dirty.extend(f"verifiedData.{section}.{name}" for name in fields)
                draft.verified_data = data

            if comments is not None:
                incoming = expand_comments(comments, draft.check_type or '')
                draft.comments = {**(draft.comments or {}), **incoming}
                dirty.extend(f"comments.{section}" for section in incoming)

            draft.dirty = sorted(set(dirty))
            db.flush()
            logger.info(f"Staged {len(draft.dirty)} edits on {case_id}/{check_key} for {self.user_id}")
            return {'success': True, 'check': self.check_view(draft)}

    def reset_check(self, case_id: str, check_key: str) -> Dict:
        """Discard staged edits and re-read the last server-confirmed values"""
        with get_db() as db:
            draft = self._draft(db, case_id, check_key)
            if not draft:
                return not_found('Check not found')
            try:
                draft.state = next_state(draft.state, DraftEvent.RESET)
            except InvalidTransition:
                return conflict('This check is being saved; wait for the save to finish')
            _refresh_values(draft, draft.server_check or {})
            db.flush()
            return {'success': True, 'check': self.check_view(draft)}

    def _verified_parts(self, entries: List[tuple]) -> tuple:
        """File parts and verifiedFileKeys for (check_index, check_type, section, FileRef) entries"""
        parts, keys, seen = [], [], set()
        for check_index, check_type, section, file_ref in entries:
            if file_ref.dedupe_key in seen:
                continue
            seen.add(file_ref.dedupe_key)
            parts.append(('verifiedFiles', file_ref.as_part()))
            keys.append({'filename': file_ref.filename, 'checkIndex': check_index,
                         'checkType': check_type, 'subSectionKey': section})
        return parts, keys

    def _send(self, case_id: str, drafts: List[ReviewDraft], staged_keys: List[str], entries: List[tuple]) -> Dict:
        checks = [_staged_check(d) if d.check_key in staged_keys else _outgoing(d.server_check) for d in drafts]
        parts, keys = self._verified_parts(entries)
        form = {'caseId': case_id, 'checks': json.dumps(checks), 'verifiedFileKeys': json.dumps(keys)}
        return self.client.update_case(case_id, form, parts)

    def _save(self, case_id: str, check_keys: Optional[List[str]],
              files_for: Callable[[str], Optional[Dict[str, List[FileRef]]]]) -> tuple:
        """Send claimed drafts and fold the reply back in; returns (reply, drafts)"""
        with get_db() as db:
            drafts = self._drafts(db, case_id)
        keys = [d.check_key for d in drafts] if check_keys is None else check_keys

        entries = []
        for index, draft in enumerate(drafts):
            if draft.check_key not in keys:
                continue
            for section, refs in (files_for(draft.check_key) or {}).items():
                entries.extend((index, draft.check_type or '', section, f) for f in refs)

        updated = self._send(case_id, drafts, keys, entries)
        if not isinstance(updated, dict):
            logger.warning(f"Unexpected save reply for case {case_id}: {type(updated).__name__}")
            updated = {}
        checks = updated.get('checks')
        return updated, self._sync(case_id, checks if isinstance(checks, list) else [], saved_keys=keys)

    def save_check(self, case_id: str, check_key: str, files: Optional[Dict[str, List[FileRef]]] = None) -> Dict:
        """Save one check's staged values with the full current check list"""
        error = self._claim(case_id, [check_key])
        if error:
            return error

        try:
            updated, drafts = self._save(case_id, [check_key], lambda key: files)
        except BackendAPIError as e:
            self._fail(case_id, [check_key], e.message)
            logger.error(f"Save failed for {case_id}/{check_key}: {e.message}")
            return backend_error(e, 'Failed to save check')
        except Exception as e:
            self._fail(case_id, [check_key], 'Failed to save check')
            logger.error(f"Save failed for {case_id}/{check_key}: {str(e)}")
            return {'error': 'Failed to save check', 'status_code': 500}

        logger.info(f"Saved check {check_key} on case {case_id}")
        saved = next((d for d in drafts if d.check_key == check_key), None)
        if saved is None:
            return not_found('Check not found')
        return {
            'success': True,
            'message': 'Check saved successfully',
            'check': self.check_view(saved, DocumentResolver(updated), updated)
        }

    def save_all(self, case_id: str, files: Optional[Dict[str, Dict[str, List[FileRef]]]] = None) -> Dict:
        """Save every check's staged values in one request"""
        error = self._claim(case_id)
        if error:
            return error

        try:
            _, drafts = self._save(case_id, None, lambda key: (files or {}).get(key))
        except BackendAPIError as e:
            self._fail(case_id, None, e.message)
            logger.error(f"Save all failed for case {case_id}: {e.message}")
            return backend_error(e, 'Failed to save changes')
        except Exception as e:
            self._fail(case_id, None, 'Failed to save changes')
            logger.error(f"Save all failed for case {case_id}: {str(e)}")
            return {'error': 'Failed to save changes', 'status_code': 500}

        logger.info(f"Saved all {len(drafts)} checks on case {case_id}")
        return {'success': True, 'message': 'All changes saved successfully', 'redirect': Config.ADMIN_HOME_PATH}

    def update_case_details(self, case_id: str, candidate_info: Optional[Dict] = None,
                            check_params: Optional[Dict] = None) -> Dict:
        """Edit candidate details and check params, sending the case's full check list.

        ``check_params`` is keyed by check type; checks it does not name keep
        their current params and every other field passes through unchanged.
        """
        with get_db() as db:
            if self._query(db, case_id).filter(ReviewDraft.state == DraftState.SAVING).count():
                return conflict(SAVING_MESSAGE)

        try:
            case = self.client.get_case(case_id)
        except BackendAPIError as e:
            return backend_error(e, 'Failed to load case')
        if not isinstance(case, dict):
            return {'error': 'Failed to load case', 'status_code': 502}

        edits = {normalize_key(k): v for k, v in (check_params or {}).items() if isinstance(v, dict)}
        checks = []
        for check in case.get('checks') or []:
            if not isinstance(check, dict):
                continue
            params = edits.get(normalize_key(check.get('checkType')))
            checks.append({**_outgoing(check), 'params': params if params is not None else check.get('params')})

        info = candidate_info if candidate_info is not None else (case.get('candidateInfo') or {})
        try:
            updated = self.client.update_case_details(case_id, {'candidateInfo': info, 'checks': json.dumps(checks)})
        except BackendAPIError as e:
            logger.error(f"Case update failed for {case_id}: {e.message}")
            return backend_error(e, 'Failed to update case. Please try again.')

        updated = updated if isinstance(updated, dict) else {}
        if isinstance(updated.get('checks'), list):
            self._sync(case_id, updated['checks'])
        logger.info(f"Updated details of case {case_id}")
        return {'success': True, 'message': 'Case updated successfully!', 'case': updated}
