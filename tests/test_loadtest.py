from loadtest import summarize


def result(request_id, status_code, code=None, elapsed=0.1, error=None):
    return {
        'request_id': request_id,
        'status_code': status_code,
        'elapsed_time': elapsed,
        'code': code,
        'error': error,
    }


class TestSummarize:

    def test_counts_outcomes(self):
        results = [
            result(1, 201, elapsed=0.2),
            result(2, 201, elapsed=0.4),
            result(3, 409, code='out_of_stock'),
            result(4, None, error='Timeout', elapsed=0.3),
        ]

        summary = summarize(results, quantity=2, initial_stock=4)

        assert summary['total'] == 4
        assert summary['created'] == 2
        assert summary['out_of_stock'] == 1
        assert summary['errors'] == 1
        assert summary['units_sold'] == 4
        assert summary['max_time'] == 0.4
        assert summary['oversold'] is False

    def test_flags_overselling(self):
        results = [result(n, 201) for n in range(1, 4)]

        assert summarize(results, quantity=1, initial_stock=2)['oversold'] is True

    def test_unknown_stock_never_oversold(self):
        assert summarize([result(1, 201)], quantity=5)['oversold'] is False

    def test_empty_run(self):
        summary = summarize([], quantity=1)

        assert summary['total'] == 0
        assert summary['avg_time'] == 0.0
