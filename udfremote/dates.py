import datetime

from pycdlib.udf import UDFTimestamp

# ECMA-167, Part 1, 7.3.1: a timezone of -2047 means "not specified"
UNSPECIFIED_TZ = -2047


def datetime_from_udf_timestamp(timestamp):
    if not isinstance(timestamp, UDFTimestamp):
        return None

    if timestamp.tz == UNSPECIFIED_TZ or timestamp.timetype != 1:
        tz = datetime.timezone.utc
    else:
        tz = datetime.timezone(datetime.timedelta(minutes=timestamp.tz))

    microsecond = (timestamp.centiseconds * 10000 +
                   timestamp.hundreds_microseconds * 100 +
                   timestamp.microseconds)

    try:
        dt = datetime.datetime(
            timestamp.year,
            timestamp.month,
            timestamp.day,
            timestamp.hour,
            timestamp.minute,
            timestamp.second,
            min(microsecond, 999999),
            tzinfo=tz
        )
    except (TypeError, ValueError):
        # Fields outside their range are parsed as None
        dt = datetime.datetime.min
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt
