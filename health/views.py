import uuid
from decimal import Decimal, InvalidOperation

from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_http_methods

from .models import WeighIn, HealthMetric
from healthtracker.api_utils import (
    APIValidationError,
    api_view,
    error_response,
    isoformat,
    parse_iso_datetime,
    parse_json_body,
)

VALID_METRIC_TYPES = {choice for choice, _ in HealthMetric.METRIC_TYPE_CHOICES}


def serialize_weigh_in(weigh_in):
    return {
        'id': str(weigh_in.id),
        'weight': float(weigh_in.weight),
        'recordedAt': isoformat(weigh_in.measurement_time),
        'notes': weigh_in.notes,
        'createdAt': isoformat(weigh_in.created_at),
        'updatedAt': isoformat(weigh_in.updated_at),
    }


def serialize_metric(metric):
    return {
        'id': str(metric.id),
        'metricType': metric.metric_type,
        'value': metric.value,
        'unit': metric.unit,
        'recordedAt': isoformat(metric.recorded_at),
        'notes': metric.notes,
    }


def _parse_weight(value):
    try:
        weight = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise APIValidationError('Weight must be a number')
    if not Decimal('0') < weight < Decimal('1000'):
        raise APIValidationError('Weight must be between 0 and 1000 lbs')
    return weight.quantize(Decimal('0.01'))


def _recorded_at(data):
    if data.get('recordedAt'):
        return parse_iso_datetime(data['recordedAt'], 'recordedAt')
    return timezone.now()


@require_http_methods(["GET", "POST"])
@api_view
def weigh_ins(request):
    """
    GET: recent weigh-ins (query param limit, default 30).

    POST: record a weigh-in.
        Body: {weight, recordedAt?, notes?}
    """
    if request.method == 'GET':
        try:
            limit = max(1, min(int(request.GET.get('limit', 30)), 365))
        except ValueError:
            raise APIValidationError('limit must be an integer')
        return JsonResponse({
            'records': [serialize_weigh_in(w) for w in WeighIn.objects.all()[:limit]],
        })

    data = parse_json_body(request)
    if data.get('weight') is None:
        raise APIValidationError('Weight is required')

    weigh_in = WeighIn.objects.create(
        weight=_parse_weight(data['weight']),
        measurement_time=_recorded_at(data),
        notes=data.get('notes') or '',
    )
    return JsonResponse(serialize_weigh_in(weigh_in), status=201)


@require_http_methods(["PATCH", "DELETE"])
@api_view
def weigh_in_detail(request, weigh_in_id):
    try:
        weigh_in = WeighIn.objects.get(id=uuid.UUID(weigh_in_id))
    except (ValueError, WeighIn.DoesNotExist):
        return error_response('Weight record not found', status=404)

    if request.method == 'DELETE':
        weigh_in.delete()
        return JsonResponse({'success': True})

    data = parse_json_body(request)
    if 'weight' in data:
        weigh_in.weight = _parse_weight(data['weight'])
    if 'recordedAt' in data:
        weigh_in.measurement_time = parse_iso_datetime(data['recordedAt'], 'recordedAt')
    if 'notes' in data:
        weigh_in.notes = data.get('notes') or ''
    weigh_in.save()
    return JsonResponse(serialize_weigh_in(weigh_in))


@require_http_methods(["GET", "POST"])
@api_view
def metrics(request):
    """
    GET: recent metrics, optionally filtered by ?type=<metricType>.

    POST: record a metric.
        Body: {metricType, value, unit?, recordedAt?, notes?}
    """
    if request.method == 'GET':
        queryset = HealthMetric.objects.all()
        metric_type = request.GET.get('type')
        if metric_type:
            queryset = queryset.filter(metric_type=metric_type)
        return JsonResponse({'metrics': [serialize_metric(m) for m in queryset[:100]]})

    data = parse_json_body(request)
    metric_type = data.get('metricType')
    if metric_type not in VALID_METRIC_TYPES:
        raise APIValidationError(f'Unknown metric type: {metric_type}')

    value = data.get('value')
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise APIValidationError('Metric value must be a number')

    metric = HealthMetric.objects.create(
        metric_type=metric_type,
        value=value,
        unit=data.get('unit') or '',
        recorded_at=_recorded_at(data),
        notes=data.get('notes') or '',
    )
    return JsonResponse(serialize_metric(metric), status=201)
